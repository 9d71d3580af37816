# dispatch.py
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from nextmailer.analytics import EventLogger
from nextmailer.email_providers.base import EmailPayload, EmailProvider, DispatchOutcome
from nextmailer.logging_config import get_logger

logger = get_logger("nextmailer", component="dispatch")

# SES allows 14/sec on a default production account; stay a little under it
DISPATCH_RATE_PER_SECOND = float(os.getenv("DISPATCH_RATE_PER_SECOND", "12"))
DISPATCH_MAX_BACKOFF_SECONDS = float(os.getenv("DISPATCH_MAX_BACKOFF_SECONDS", "5"))

ProgressCallback = Callable[[int, int], None]


@dataclass
class AggregateResult:
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return self.successful + self.failed


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


def _record_event(event_logger: EventLogger, campaign_id, recipient: str, event_type: str, data: dict) -> None:
    # EventLogger already swallows store errors; this covers other loggers
    try:
        event_logger.log_event(campaign_id, recipient, event_type, data)
    except Exception:
        logger.exception(
            "dispatch_event_log_failed",
            extra={"campaign_id": campaign_id, "recipient": recipient, "event_type": event_type},
        )


def check_rate(rate_per_second: float) -> float:
    if rate_per_second <= 0:
        raise ValueError(f"rate_per_second must be positive (got {rate_per_second})")
    return rate_per_second


class Pacer:
    """
    Fixed interval between sends, doubled after each throttled outcome up to
    `max_delay` and reset on the next non-throttled one.
    """

    def __init__(
        self,
        rate_per_second: float,
        max_delay: float = DISPATCH_MAX_BACKOFF_SECONDS,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        check_rate(rate_per_second)

        self.base_delay = 1.0 / rate_per_second
        self.max_delay = max(max_delay, self.base_delay)
        self.delay = self.base_delay
        self.cancel_event = cancel_event
        self.sleep = sleep

    def record(self, throttled: bool) -> None:
        if throttled:
            self.delay = min(self.delay * 2, self.max_delay)
        else:
            self.delay = self.base_delay

    def wait(self) -> bool:
        """Sleeps for the current delay. Returns False if cancelled meanwhile."""
        if self.cancel_event is None:
            self.sleep(self.delay)
            return True
        return not self.cancel_event.wait(self.delay)


def dispatch_bulk(
    payloads: Sequence[EmailPayload],
    campaign_id,
    on_progress: Optional[ProgressCallback] = None,
    *,
    provider: EmailProvider,
    event_logger: EventLogger,
    rate_per_second: float = DISPATCH_RATE_PER_SECOND,
    max_backoff_seconds: float = DISPATCH_MAX_BACKOFF_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AggregateResult:
    """
    Sends every payload once, in order, paced to `rate_per_second`.

    Each attempt produces exactly one analytics event ("sent" or "bounced")
    before the loop moves on. Per-recipient errors are counted as failures
    and never abort the batch. If `cancel_event` is set, the payload in
    flight completes and the rest are reported as skipped.
    """
    pacer = Pacer(rate_per_second, max_backoff_seconds, cancel_event=cancel_event, sleep=sleep)

    total = len(payloads)
    result = AggregateResult()

    logger.info(
        "bulk_dispatch_started",
        extra={"campaign_id": campaign_id, "total": total, "rate_per_second": rate_per_second},
    )

    for i, payload in enumerate(payloads):
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            break

        try:
            outcome: DispatchOutcome = provider.send_email(payload)
        except Exception as e:
            logger.exception(
                "dispatch_item_failed",
                extra={"campaign_id": campaign_id, "recipient": payload.recipient},
            )
            outcome = DispatchOutcome.failed(getattr(provider, "name", "unknown"), str(e) or type(e).__name__)

        if outcome.succeeded:
            result.successful += 1
            _record_event(event_logger, campaign_id, payload.recipient, "sent", {
                "message_id": outcome.provider_message_id,
                "timestamp": _now_iso(),
            })
        else:
            result.failed += 1
            logger.warning(
                "dispatch_item_rejected",
                extra={
                    "campaign_id": campaign_id,
                    "recipient": payload.recipient,
                    "provider": outcome.provider,
                    "reason": outcome.failure_reason,
                    "throttled": outcome.throttled,
                },
            )
            _record_event(event_logger, campaign_id, payload.recipient, "bounced", {
                "error": outcome.failure_reason,
                "timestamp": _now_iso(),
            })

        if on_progress is not None:
            try:
                on_progress(result.attempted, total)
            except Exception:
                logger.exception("dispatch_progress_callback_failed", extra={"campaign_id": campaign_id})

        pacer.record(outcome.throttled)

        if i < total - 1 and not pacer.wait():
            result.cancelled = True
            break

    result.skipped = total - result.attempted

    logger.info(
        "bulk_dispatch_completed",
        extra={
            "campaign_id": campaign_id,
            "total": total,
            "successful": result.successful,
            "failed": result.failed,
            "skipped": result.skipped,
            "cancelled": result.cancelled,
        },
    )
    return result
