from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class EmailPayload:
    recipient: str
    subject: str
    html_body: str
    sender_email: str
    sender_name: Optional[str] = None
    text_body: Optional[str] = None

    @property
    def source(self) -> str:
        if self.sender_name:
            return f"{self.sender_name} <{self.sender_email}>"
        return self.sender_email


@dataclass
class DispatchOutcome:
    provider: str
    succeeded: bool
    provider_message_id: Optional[str] = None
    failure_reason: Optional[str] = None
    # provider rejected the call for exceeding its sending rate
    throttled: bool = False

    @classmethod
    def ok(cls, provider: str, message_id: Optional[str]) -> "DispatchOutcome":
        return cls(provider=provider, succeeded=True, provider_message_id=message_id)

    @classmethod
    def failed(cls, provider: str, reason: str, throttled: bool = False) -> "DispatchOutcome":
        return cls(provider=provider, succeeded=False, failure_reason=reason, throttled=throttled)


class EmailProvider(Protocol):
    def send_email(self, payload: EmailPayload) -> DispatchOutcome:
        """
        One delivery attempt. Provider-level failures come back as
        succeeded=False; only configuration problems raise.
        """
        ...
