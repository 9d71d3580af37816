# schemas.py
from pydantic import BaseModel
from typing import Optional, Dict, Any
from uuid import UUID


# ---------- Campaign send ----------
class SendQueued(BaseModel):
    status: str
    task_id: str
    campaign_id: UUID
    recipient_count: int


class TaskStatus(BaseModel):
    task_id: str
    state: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# ---------- Analytics ----------
class AnalyticsSummaryOut(BaseModel):
    campaign_id: UUID
    sent: int = 0
    delivered: int = 0
    bounced: int = 0
    complaints: int = 0
    opened: int = 0
    clicked: int = 0


# ---------- Webhooks ----------
class SnsEnvelope(BaseModel):
    """Amazon SNS HTTP(S) delivery body; SES feedback arrives JSON-encoded in Message."""

    Type: str
    MessageId: Optional[str] = None
    TopicArn: Optional[str] = None
    Message: Optional[str] = None
    SubscribeURL: Optional[str] = None
    Timestamp: Optional[str] = None
    SignatureVersion: Optional[str] = None
    SigningCertURL: Optional[str] = None


# ---------- Single send ----------
class SendEmailIn(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    html_body: Optional[str] = None
    text_body: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None


class ConfigCheckIn(BaseModel):
    to: Optional[str] = None


class SendEmailOut(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
