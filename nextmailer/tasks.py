# tasks.py
import os
from datetime import datetime
from typing import List
from uuid import UUID

from celery import current_task
from sqlalchemy.orm import Session

from nextmailer.analytics import EventLogger, SqlAlchemyEventStore
from nextmailer.celery_app import celery_app
from nextmailer.db import SessionLocal
from nextmailer.dispatch import DISPATCH_RATE_PER_SECOND, check_rate, dispatch_bulk
from nextmailer.email_providers.base import EmailPayload
from nextmailer.email_providers.factory import get_email_provider
from nextmailer.logging_config import get_logger
from nextmailer.models import Campaign, Subscriber

logger = get_logger("nextmailer", component="worker")


def final_status(successful: int, failed: int) -> str:
    if failed and not successful:
        return "failed"
    return "sent"


def build_payloads(campaign: Campaign, subscribers: List[Subscriber]) -> List[EmailPayload]:
    from_email = os.getenv("FROM_EMAIL", "noreply@example.com")
    from_name = os.getenv("FROM_NAME", "NextMailer Personal")

    # content is already rendered and sanitized when the campaign is saved
    return [
        EmailPayload(
            recipient=s.email,
            subject=campaign.subject,
            html_body=campaign.content,
            sender_email=from_email,
            sender_name=from_name,
        )
        for s in subscribers
    ]


def active_subscribers(db: Session, campaign: Campaign) -> List[Subscriber]:
    return (
        db.query(Subscriber)
        .filter(
            Subscriber.email_list_id == campaign.email_list_id,
            Subscriber.status == "active",
        )
        .order_by(Subscriber.created_at.asc(), Subscriber.email.asc())
        .all()
    )


def claim_campaign(db: Session, campaign_id: UUID, recipient_count: int) -> bool:
    """draft -> sending in one statement. False if someone else got there first."""
    now = datetime.utcnow()
    claimed = (
        db.query(Campaign)
        .filter(Campaign.id == campaign_id, Campaign.status == "draft")
        .update(
            {
                "status": "sending",
                "sent_at": now,
                "recipient_count": recipient_count,
                "updated_at": now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return claimed == 1


@celery_app.task(name="tasks.send_campaign")
def send_campaign(campaign_id: str) -> dict:
    """
    Sends a draft campaign to every active subscriber of its list.

    draft -> sending -> sent/failed. The draft -> sending step is a
    conditional UPDATE, so of two deliveries for the same campaign only one
    sends. Any unexpected error after that marks the campaign failed and is
    re-raised so Celery records it.
    """
    db = SessionLocal()
    task_id = getattr(current_task.request, "id", None) if current_task else None
    campaign_uuid = UUID(str(campaign_id))
    claimed = False

    try:
        campaign = db.query(Campaign).get(campaign_uuid)
        if not campaign:
            raise ValueError(f"Campaign not found: {campaign_id}")
        if campaign.status != "draft":
            raise ValueError(f"Campaign is not in draft status (status={campaign.status})")

        subscribers = active_subscribers(db, campaign)
        if not subscribers:
            raise ValueError(f"No active subscribers for campaign: {campaign_id}")

        # Fail fast on configuration errors, before the campaign leaves draft
        rate_per_second = check_rate(DISPATCH_RATE_PER_SECOND)
        provider = get_email_provider()

        claimed = claim_campaign(db, campaign_uuid, len(subscribers))
        if not claimed:
            raise ValueError(f"Campaign already claimed by another send: {campaign_id}")
        campaign = db.query(Campaign).get(campaign_uuid)

        payloads = build_payloads(campaign, subscribers)

        logger.info(
            "send_campaign_started",
            extra={"task_id": task_id, "campaign_id": campaign_uuid, "recipient_count": len(payloads)},
        )

        def on_progress(done: int, total: int) -> None:
            logger.info(
                "send_campaign_progress",
                extra={"task_id": task_id, "campaign_id": campaign_uuid, "processed": done, "total": total},
            )

        result = dispatch_bulk(
            payloads,
            campaign_uuid,
            on_progress,
            provider=provider,
            event_logger=EventLogger(SqlAlchemyEventStore(db)),
            rate_per_second=rate_per_second,
        )

        status = final_status(result.successful, result.failed)
        campaign.status = status
        db.commit()

        logger.info(
            "send_campaign_completed",
            extra={
                "task_id": task_id,
                "campaign_id": campaign_uuid,
                "status": status,
                "successful": result.successful,
                "failed": result.failed,
            },
        )

        return {
            "campaign_id": str(campaign_uuid),
            "total": len(payloads),
            "successful": result.successful,
            "failed": result.failed,
            "status": status,
        }

    except Exception:
        logger.exception("send_campaign_failed", extra={"task_id": task_id, "campaign_id": campaign_uuid})
        db.rollback()
        # only the worker that moved it to "sending" may mark it failed
        campaign = db.query(Campaign).get(campaign_uuid) if claimed else None
        if campaign and campaign.status == "sending":
            campaign.status = "failed"
            db.commit()
        raise

    finally:
        db.close()
