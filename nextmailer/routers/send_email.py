import os
from datetime import datetime

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from nextmailer.email_providers.base import EmailPayload
from nextmailer.email_providers.factory import get_email_provider
from nextmailer.logging_config import get_logger
from nextmailer.schemas import SendEmailIn, SendEmailOut, ConfigCheckIn

router = APIRouter()

logger = get_logger("nextmailer", component="api")


def _deliver(payload: EmailPayload):
    try:
        provider = get_email_provider()
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=f"Email provider is not configured: {e}")

    outcome = provider.send_email(payload)
    if not outcome.succeeded:
        logger.warning(
            "single_send_failed",
            extra={"recipient": payload.recipient, "provider": outcome.provider, "reason": outcome.failure_reason},
        )
        return JSONResponse(
            status_code=502,
            content=SendEmailOut(success=False, error=outcome.failure_reason).model_dump(),
        )

    return SendEmailOut(success=True, message_id=outcome.provider_message_id)


@router.post("", response_model=SendEmailOut)
def send_email(payload: SendEmailIn):
    """
    Sends one email outside any campaign. Nothing is written to
    campaign_analytics.
    """
    if not payload.to or not payload.subject or not payload.html_body:
        raise HTTPException(status_code=400, detail="Email data is incomplete")

    return _deliver(
        EmailPayload(
            recipient=payload.to,
            subject=payload.subject,
            html_body=payload.html_body,
            text_body=payload.text_body,
            sender_email=payload.from_email or os.getenv("FROM_EMAIL", "noreply@example.com"),
            sender_name=payload.from_name or os.getenv("FROM_NAME", "NextMailer Personal"),
        )
    )


@router.post("/test", response_model=SendEmailOut)
def send_test_email(payload: ConfigCheckIn):
    """Sends a fixed message to check that the provider credentials work."""
    if not payload.to:
        raise HTTPException(status_code=400, detail="Recipient is required")

    from_email = os.getenv("FROM_EMAIL", "noreply@example.com")
    from_name = os.getenv("FROM_NAME", "NextMailer Personal")
    provider_name = os.getenv("EMAIL_PROVIDER", "ses")
    sent_at = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #333;">Your email configuration works</h2>'
        "<p>This test email was sent from NextMailer Personal to verify your sending setup.</p>"
        '<hr style="border: 1px solid #eee; margin: 20px 0;">'
        f'<p style="color: #666; font-size: 14px;"><strong>From:</strong> {from_name} &lt;{from_email}&gt;<br>'
        f"<strong>Provider:</strong> {provider_name}<br>"
        f"<strong>Sent at:</strong> {sent_at}</p>"
        "</div>"
    )
    text = (
        "Your email configuration works.\n\n"
        "This test email was sent from NextMailer Personal to verify your sending setup.\n\n"
        f"From: {from_name} <{from_email}>\n"
        f"Provider: {provider_name}\n"
        f"Sent at: {sent_at}\n"
    )

    return _deliver(
        EmailPayload(
            recipient=payload.to,
            subject="Test Email from NextMailer Personal",
            html_body=html,
            text_body=text,
            sender_email=from_email,
            sender_name=from_name,
        )
    )
