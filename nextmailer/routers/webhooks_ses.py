import json
import re
from typing import Optional
from urllib.parse import urlparse

import requests
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from nextmailer.analytics import handle_bounce_notification
from nextmailer.db import get_db
from nextmailer.logging_config import get_logger
from nextmailer.schemas import SnsEnvelope

router = APIRouter(prefix="/webhooks/ses", tags=["webhooks"])

logger = get_logger("nextmailer", component="webhooks")

# SubscribeURL / SigningCertURL must point at a regional SNS endpoint
SNS_HOST_RE = re.compile(r"^sns\.[a-z0-9-]+\.amazonaws\.com(\.cn)?$")


def is_sns_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    try:
        port = parsed.port
    except ValueError:
        return False
    return (
        parsed.scheme == "https"
        and port in (None, 443)
        and not parsed.username
        and SNS_HOST_RE.match(parsed.hostname or "") is not None
    )


@router.post("")
async def ses_notification(request: Request, db: Session = Depends(get_db)):
    """
    SNS topic subscription for SES bounce/complaint feedback.
    SNS posts with Content-Type text/plain, so the body is parsed by hand.
    """
    raw = await request.body()
    try:
        envelope = SnsEnvelope(**json.loads(raw))
    except (ValueError, TypeError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid SNS message")

    if envelope.SigningCertURL is not None and not is_sns_url(envelope.SigningCertURL):
        raise HTTPException(status_code=400, detail="SigningCertURL is not an SNS endpoint")

    if envelope.Type == "SubscriptionConfirmation":
        if not is_sns_url(envelope.SubscribeURL):
            logger.warning("sns_subscribe_url_rejected", extra={"topic_arn": envelope.TopicArn})
            raise HTTPException(status_code=400, detail="SubscribeURL is not an SNS endpoint")

        resp = await run_in_threadpool(requests.get, envelope.SubscribeURL, timeout=10, allow_redirects=False)
        logger.info(
            "sns_subscription_confirmed",
            extra={"topic_arn": envelope.TopicArn, "status_code": resp.status_code},
        )
        return {"status": "confirmed"}

    if envelope.Type != "Notification":
        return {"status": "ignored", "type": envelope.Type}

    try:
        notification = json.loads(envelope.Message or "")
    except ValueError:
        raise HTTPException(status_code=400, detail="Notification Message is not JSON")
    if not isinstance(notification, dict):
        raise HTTPException(status_code=400, detail="Notification Message is not an object")

    event = await run_in_threadpool(handle_bounce_notification, db, notification)
    if not event:
        return {"status": "ignored"}

    return {"status": "ok", "event_type": event.event_type, "event_id": str(event.id)}
