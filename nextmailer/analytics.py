# analytics.py
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from nextmailer.models import Campaign, Subscriber, CampaignAnalytics
from nextmailer.logging_config import get_logger

logger = get_logger("nextmailer", component="analytics")


class EventStore(Protocol):
    def find_campaign(self, campaign_id) -> Optional[Campaign]:
        ...

    def find_subscriber(self, email: str, email_list_id) -> Optional[Subscriber]:
        ...

    def insert_event(
        self,
        campaign_id,
        subscriber_id,
        event_type: str,
        event_data: Dict[str, Any],
        provider_message_id: Optional[str] = None,
    ) -> CampaignAnalytics:
        ...

    def rollback(self) -> None:
        ...


class SqlAlchemyEventStore:
    def __init__(self, db: Session):
        self.db = db

    def find_campaign(self, campaign_id) -> Optional[Campaign]:
        return self.db.query(Campaign).get(campaign_id)

    def find_subscriber(self, email: str, email_list_id) -> Optional[Subscriber]:
        return (
            self.db.query(Subscriber)
            .filter(Subscriber.email == email, Subscriber.email_list_id == email_list_id)
            .first()
        )

    def insert_event(
        self,
        campaign_id,
        subscriber_id,
        event_type: str,
        event_data: Dict[str, Any],
        provider_message_id: Optional[str] = None,
    ) -> CampaignAnalytics:
        row = CampaignAnalytics(
            campaign_id=campaign_id,
            subscriber_id=subscriber_id,
            event_type=event_type,
            event_data=event_data,
            provider_message_id=provider_message_id,
        )
        self.db.add(row)
        # one commit per recipient, so a later failure can't roll this back
        self.db.commit()
        return row

    def rollback(self) -> None:
        self.db.rollback()


class EventLogger:
    """
    Turns one delivery outcome into a campaign_analytics row.

    Never raises: a missing campaign/subscriber or a store error is logged
    and dropped so that telemetry can't stop a send in progress.
    """

    def __init__(self, store: EventStore):
        self.store = store

    def log_event(
        self,
        campaign_id,
        recipient: str,
        event_type: str,
        event_data: Dict[str, Any],
    ) -> Optional[CampaignAnalytics]:
        try:
            campaign = self.store.find_campaign(campaign_id)
            if not campaign:
                logger.warning("analytics_campaign_not_found", extra={"campaign_id": campaign_id})
                return None

            subscriber = self.store.find_subscriber(recipient, campaign.email_list_id)
            if not subscriber:
                logger.warning(
                    "analytics_subscriber_not_found",
                    extra={"campaign_id": campaign_id, "recipient": recipient},
                )
                return None

            message_id = event_data.get("message_id") if event_type == "sent" else None

            return self.store.insert_event(
                campaign_id=campaign.id,
                subscriber_id=subscriber.id,
                event_type=event_type,
                event_data=event_data,
                provider_message_id=message_id,
            )
        except Exception:
            logger.exception(
                "analytics_event_log_failed",
                extra={"campaign_id": campaign_id, "recipient": recipient, "event_type": event_type},
            )
            try:
                self.store.rollback()
            except Exception:
                logger.exception("analytics_rollback_failed", extra={"campaign_id": campaign_id})
            return None


def handle_bounce_notification(db: Session, notification: Dict[str, Any]) -> Optional[CampaignAnalytics]:
    """
    SES bounce/complaint notification -> a "bounced"/"complaint" event on the
    campaign that sent the original message.

    Accepts both event-publishing payloads ("eventType") and SNS feedback
    notifications ("notificationType"). Permanent bounces also mark the
    subscriber as bounced so later campaigns skip them.
    """
    kind = str(notification.get("eventType") or notification.get("notificationType") or "").lower()
    if kind not in ("bounce", "complaint"):
        logger.info("ses_notification_ignored", extra={"notification_type": kind})
        return None

    mail = notification.get("mail") or {}
    bounce = notification.get("bounce") or {}
    complaint = notification.get("complaint") or {}
    message_id = mail.get("messageId")
    if not message_id:
        logger.warning("ses_notification_missing_message_id", extra={"notification_type": kind})
        return None

    sent = (
        db.query(CampaignAnalytics)
        .filter(
            CampaignAnalytics.provider_message_id == message_id,
            CampaignAnalytics.event_type == "sent",
        )
        .first()
    )
    if not sent:
        logger.info("ses_notification_unmatched", extra={"provider_message_id": message_id})
        return None

    event = CampaignAnalytics(
        campaign_id=sent.campaign_id,
        subscriber_id=sent.subscriber_id,
        event_type="bounced" if kind == "bounce" else "complaint",
        event_data={
            "bounce_type": bounce.get("bounceType"),
            "bounce_sub_type": bounce.get("bounceSubType"),
            "complaint_type": complaint.get("complaintFeedbackType"),
            "original_message_id": message_id,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
    db.add(event)

    if bounce.get("bounceType") == "Permanent":
        subscriber = db.query(Subscriber).get(sent.subscriber_id)
        if subscriber:
            subscriber.status = "bounced"

    db.commit()

    logger.info(
        "ses_notification_recorded",
        extra={
            "campaign_id": sent.campaign_id,
            "event_type": event.event_type,
            "bounce_type": bounce.get("bounceType"),
        },
    )
    return event


def summarize_campaign(db: Session, campaign_id) -> Dict[str, int]:
    rows = (
        db.query(CampaignAnalytics.event_type, func.count(CampaignAnalytics.id))
        .filter(CampaignAnalytics.campaign_id == campaign_id)
        .group_by(CampaignAnalytics.event_type)
        .all()
    )
    counts = {event_type: n for event_type, n in rows}

    return {
        "sent": counts.get("sent", 0),
        "delivered": counts.get("delivered", 0),
        "bounced": counts.get("bounced", 0),
        "complaints": counts.get("complaint", 0),
        "opened": counts.get("opened", 0),
        "clicked": counts.get("clicked", 0),
    }
