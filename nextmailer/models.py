# models.py
import uuid
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey, JSON, Uuid
)
from sqlalchemy.orm import relationship
from datetime import datetime
from nextmailer.db import Base

# Event kinds stored in campaign_analytics.event_type.
# Only "sent" and "bounced" are written by the dispatch loop; the rest
# arrive through provider notifications.
EVENT_TYPES = ("sent", "delivered", "bounced", "complaint", "opened", "clicked")


class EmailList(Base):
    __tablename__ = "email_lists"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    subscriber_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscribers = relationship("Subscriber", back_populates="email_list")


class Subscriber(Base):
    __tablename__ = "subscribers"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email_list_id = Column(Uuid(as_uuid=True), ForeignKey("email_lists.id"), nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default="active")  # active/unsubscribed/bounced

    subscribed_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    email_list = relationship("EmailList", back_populates="subscribers")


class Campaign(Base):
    __tablename__ = "campaigns"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email_list_id = Column(Uuid(as_uuid=True), ForeignKey("email_lists.id"), nullable=False)
    name = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    template_id = Column(String, nullable=True)  # newsletter/promotional/welcome

    status = Column(String, nullable=False, default="draft")  # draft/sending/sent/failed
    sent_at = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    email_list = relationship("EmailList")


class CampaignAnalytics(Base):
    __tablename__ = "campaign_analytics"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id = Column(Uuid(as_uuid=True), ForeignKey("campaigns.id"), nullable=False, index=True)
    subscriber_id = Column(Uuid(as_uuid=True), ForeignKey("subscribers.id"), nullable=False)
    event_type = Column(String, nullable=False)
    event_data = Column(JSON, nullable=True)

    # set on "sent" rows so provider notifications can be matched back
    provider_message_id = Column(String, nullable=True, index=True)

    timestamp = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("Campaign")
    subscriber = relationship("Subscriber")
