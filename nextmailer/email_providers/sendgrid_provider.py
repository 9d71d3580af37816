import os
import uuid
from typing import Optional

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To

from nextmailer.email_providers.base import EmailPayload, DispatchOutcome


class SendGridEmailProvider:
    name = "sendgrid"

    def __init__(self, api_key: Optional[str] = None, client: Optional[SendGridAPIClient] = None):
        self.api_key = api_key or os.getenv("SENDGRID_API_KEY")
        if not self.api_key:
            raise RuntimeError("SENDGRID_API_KEY is not set")

        self.client = client or SendGridAPIClient(self.api_key)

    def send_email(self, payload: EmailPayload) -> DispatchOutcome:
        mail = Mail(
            from_email=Email(payload.sender_email, payload.sender_name or ""),
            to_emails=To(payload.recipient),
            subject=payload.subject,
            html_content=payload.html_body,
            plain_text_content=payload.text_body,
        )

        try:
            response = self.client.send(mail)
        except HTTPError as e:
            # SendGrid returns useful JSON in the body for 4xx
            body = e.body.decode("utf-8") if hasattr(e.body, "decode") else e.body
            return DispatchOutcome.failed(
                self.name,
                f"SendGrid error {e.status_code}: {body}",
                throttled=e.status_code == 429,
            )
        except OSError as e:
            return DispatchOutcome.failed(self.name, f"SendGrid request failed: {e}")

        # SendGrid doesn't always return a message id; fall back to a local one
        msg_id = response.headers.get("X-Message-Id") or f"sg-fallback-{uuid.uuid4()}"
        return DispatchOutcome.ok(self.name, msg_id)
