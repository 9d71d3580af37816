import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from nextmailer.analytics import EventLogger, SqlAlchemyEventStore
from nextmailer.db import get_db
from nextmailer.models import CampaignAnalytics, Subscriber
from nextmailer.routers import campaigns, webhooks_ses


@pytest.fixture
def client(session_factory):
    app = FastAPI()
    app.include_router(campaigns.router, prefix="/campaigns")
    app.include_router(webhooks_ses.router)

    def _override():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override
    return TestClient(app)


class FakeAsyncResult:
    id = "task-123"


def test_send_queues_task(client, make_campaign, monkeypatch):
    campaign = make_campaign()
    queued = []

    def fake_send_task(name, args=None, **kwargs):
        queued.append((name, args))
        return FakeAsyncResult()

    monkeypatch.setattr(campaigns.celery_app, "send_task", fake_send_task)

    response = client.post(f"/campaigns/{campaign.id}/send")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"
    assert body["task_id"] == "task-123"
    assert body["recipient_count"] == 3
    assert queued == [("tasks.send_campaign", [str(campaign.id)])]


def test_send_unknown_campaign_is_404(client, make_campaign):
    make_campaign()
    response = client.post("/campaigns/00000000-0000-0000-0000-000000000000/send")
    assert response.status_code == 404


def test_send_non_draft_is_400(client, make_campaign):
    campaign = make_campaign(status="sending")
    response = client.post(f"/campaigns/{campaign.id}/send")
    assert response.status_code == 400


def test_send_without_subscribers_is_400(client, make_campaign):
    campaign = make_campaign(emails=())
    response = client.post(f"/campaigns/{campaign.id}/send")
    assert response.status_code == 400


def test_analytics_summary(client, db, make_campaign):
    campaign = make_campaign()
    EventLogger(SqlAlchemyEventStore(db)).log_event(campaign.id, "a@example.com", "sent", {"message_id": "m1"})

    response = client.get(f"/campaigns/{campaign.id}/analytics")

    assert response.status_code == 200
    body = response.json()
    assert body["sent"] == 1
    assert body["bounced"] == 0


def _sns(message: dict, kind="Notification"):
    return json.dumps({
        "Type": kind,
        "MessageId": "sns-1",
        "TopicArn": "arn:aws:sns:us-east-1:123456789012:ses-feedback",
        "Message": json.dumps(message),
    })


def test_webhook_records_permanent_bounce(client, db, make_campaign):
    campaign = make_campaign()
    EventLogger(SqlAlchemyEventStore(db)).log_event(campaign.id, "a@example.com", "sent", {"message_id": "ses-1"})

    response = client.post(
        "/webhooks/ses",
        content=_sns({
            "notificationType": "Bounce",
            "bounce": {"bounceType": "Permanent", "bounceSubType": "General"},
            "mail": {"messageId": "ses-1"},
        }),
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert response.json()["event_type"] == "bounced"

    db.expire_all()
    assert db.query(Subscriber).filter(Subscriber.email == "a@example.com").one().status == "bounced"
    assert db.query(CampaignAnalytics).filter(CampaignAnalytics.event_type == "bounced").count() == 1


def test_webhook_unmatched_notification_is_ignored(client, make_campaign):
    make_campaign()
    response = client.post(
        "/webhooks/ses",
        content=_sns({"notificationType": "Bounce", "mail": {"messageId": "unknown"}}),
    )
    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


def test_webhook_confirms_subscription(client, monkeypatch):
    fetched = []

    class _Resp:
        status_code = 200

    def fake_get(url, **kwargs):
        fetched.append(url)
        return _Resp()

    monkeypatch.setattr(webhooks_ses.requests, "get", fake_get)

    response = client.post(
        "/webhooks/ses",
        content=json.dumps({
            "Type": "SubscriptionConfirmation",
            "SubscribeURL": "https://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=abc",
        }),
    )

    assert response.status_code == 200
    assert response.json() == {"status": "confirmed"}
    assert fetched == ["https://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=abc"]


def test_webhook_rejects_malformed_body(client):
    response = client.post("/webhooks/ses", content="not json")
    assert response.status_code == 400


@pytest.mark.parametrize("url", [
    "http://169.254.169.254/latest/meta-data/",
    "https://169.254.169.254/latest/meta-data/",
    "http://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=abc",
    "https://sns.us-east-1.amazonaws.com.evil.example/?Token=abc",
    "https://internal.example.com/admin",
    "https://sns.us-east-1.amazonaws.com:8443/?Token=abc",
])
def test_webhook_refuses_non_sns_subscribe_url(client, monkeypatch, url):
    fetched = []
    monkeypatch.setattr(webhooks_ses.requests, "get", lambda u, **kwargs: fetched.append(u))

    response = client.post(
        "/webhooks/ses",
        content=json.dumps({"Type": "SubscriptionConfirmation", "SubscribeURL": url}),
    )

    assert response.status_code == 400
    assert fetched == []


def test_webhook_refuses_foreign_signing_cert(client, make_campaign):
    make_campaign()
    body = json.loads(_sns({"notificationType": "Bounce", "mail": {"messageId": "x"}}))
    body["SigningCertURL"] = "https://attacker.example/cert.pem"

    response = client.post("/webhooks/ses", content=json.dumps(body))

    assert response.status_code == 400


def test_is_sns_url():
    assert webhooks_ses.is_sns_url("https://sns.eu-west-1.amazonaws.com/?Action=ConfirmSubscription")
    assert webhooks_ses.is_sns_url("https://sns.cn-north-1.amazonaws.com.cn/x")
    assert not webhooks_ses.is_sns_url(None)
    assert not webhooks_ses.is_sns_url("https://user@sns.eu-west-1.amazonaws.com/")
    assert not webhooks_ses.is_sns_url("https://sns.eu-west-1.amazonaws.com:abc/")


class FakeTaskResult:
    def __init__(self, state, result=None):
        self.state = state
        self.result = result

    def successful(self):
        return self.state == "SUCCESS"

    def failed(self):
        return self.state == "FAILURE"


def test_task_status_success(client, monkeypatch):
    summary = {"campaign_id": "c1", "total": 3, "successful": 3, "failed": 0, "status": "sent"}
    monkeypatch.setattr(campaigns, "AsyncResult", lambda task_id, app=None: FakeTaskResult("SUCCESS", summary))

    response = client.get("/campaigns/tasks/task-123")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "SUCCESS"
    assert body["result"] == summary
    assert body["error"] is None


def test_task_status_failure(client, monkeypatch):
    error = ValueError("Campaign is not in draft status (status=sent)")
    monkeypatch.setattr(campaigns, "AsyncResult", lambda task_id, app=None: FakeTaskResult("FAILURE", error))

    response = client.get("/campaigns/tasks/task-9")

    body = response.json()
    assert body["task_id"] == "task-9"
    assert body["state"] == "FAILURE"
    assert body["result"] is None
    assert body["error"] == "Campaign is not in draft status (status=sent)"


def test_task_status_pending(client, monkeypatch):
    monkeypatch.setattr(campaigns, "AsyncResult", lambda task_id, app=None: FakeTaskResult("PENDING"))

    body = client.get("/campaigns/tasks/task-1").json()

    assert body["state"] == "PENDING"
    assert body["result"] is None and body["error"] is None
