import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nextmailer.db import Base
from nextmailer.email_providers.base import DispatchOutcome, EmailPayload
from nextmailer.models import Campaign, EmailList, Subscriber


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_campaign(db):
    """Creates a list with the given subscriber emails and a draft campaign on it."""

    def _make(emails=("a@example.com", "b@example.com", "c@example.com"), status="draft"):
        email_list = EmailList(name="Readers", subscriber_count=len(emails))
        db.add(email_list)
        db.flush()

        for email in emails:
            db.add(Subscriber(email_list_id=email_list.id, email=email, status="active"))

        campaign = Campaign(
            email_list_id=email_list.id,
            name="October newsletter",
            subject="What's new",
            content="<p>Hello</p>",
            template_id="newsletter",
            status=status,
        )
        db.add(campaign)
        db.commit()
        return campaign

    return _make


class FakeProvider:
    """Plays back a script of outcomes; True/False/exception per call."""

    name = "fake"

    def __init__(self, script=None, default=True):
        self.script = list(script or [])
        self.default = default
        self.calls: list[EmailPayload] = []

    def send_email(self, payload: EmailPayload) -> DispatchOutcome:
        self.calls.append(payload)
        step = self.script.pop(0) if self.script else self.default

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, DispatchOutcome):
            return step
        if step:
            return DispatchOutcome.ok(self.name, f"msg-{len(self.calls)}")
        return DispatchOutcome.failed(self.name, "Address rejected")


class RecordingEventLogger:
    def __init__(self):
        self.events: list[tuple] = []

    def log_event(self, campaign_id, recipient, event_type, event_data):
        self.events.append((campaign_id, recipient, event_type, event_data))

    @property
    def kinds(self):
        return [e[2] for e in self.events]


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def event_log():
    return RecordingEventLogger()


def make_payloads(n: int) -> list[EmailPayload]:
    return [
        EmailPayload(
            recipient=f"user{i}@example.com",
            subject="Hi",
            html_body="<p>Hi</p>",
            sender_email="noreply@example.com",
            sender_name="NextMailer Personal",
        )
        for i in range(n)
    ]
