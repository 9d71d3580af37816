import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeProvider
from nextmailer.routers import send_email


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(send_email, "get_email_provider", lambda: fake)
    monkeypatch.setenv("FROM_EMAIL", "me@example.com")
    monkeypatch.setenv("FROM_NAME", "Me")
    return fake


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(send_email.router, prefix="/send-email")
    return TestClient(app)


def test_single_send_returns_message_id(client, provider):
    response = client.post("/send-email", json={
        "to": "reader@example.com",
        "subject": "Hello",
        "html_body": "<p>Hello</p>",
        "text_body": "Hello",
    })

    assert response.status_code == 200
    assert response.json() == {"success": True, "message_id": "msg-1", "error": None}

    sent = provider.calls[0]
    assert sent.recipient == "reader@example.com"
    assert sent.text_body == "Hello"
    assert sent.sender_email == "me@example.com"
    assert sent.sender_name == "Me"


def test_single_send_uses_explicit_sender(client, provider):
    client.post("/send-email", json={
        "to": "reader@example.com",
        "subject": "Hello",
        "html_body": "<p>Hello</p>",
        "from_email": "other@example.com",
        "from_name": "Other",
    })

    assert provider.calls[0].source == "Other <other@example.com>"


@pytest.mark.parametrize("missing", ["to", "subject", "html_body"])
def test_incomplete_input_is_400(client, provider, missing):
    body = {"to": "reader@example.com", "subject": "Hello", "html_body": "<p>Hello</p>"}
    del body[missing]

    response = client.post("/send-email", json=body)

    assert response.status_code == 400
    assert provider.calls == []


def test_provider_rejection_is_reported(client, provider):
    provider.default = False

    response = client.post("/send-email", json={
        "to": "reader@example.com", "subject": "Hello", "html_body": "<p>Hello</p>",
    })

    assert response.status_code == 502
    assert response.json() == {"success": False, "message_id": None, "error": "Address rejected"}


def test_unconfigured_provider_is_500(client, monkeypatch):
    def no_credentials():
        raise RuntimeError("SENDGRID_API_KEY is not set")

    monkeypatch.setattr(send_email, "get_email_provider", no_credentials)

    response = client.post("/send-email", json={
        "to": "reader@example.com", "subject": "Hello", "html_body": "<p>Hello</p>",
    })

    assert response.status_code == 500
    assert "SENDGRID_API_KEY" in response.json()["detail"]


def test_config_check_email(client, provider):
    response = client.post("/send-email/test", json={"to": "me@example.com"})

    assert response.status_code == 200
    assert response.json()["success"] is True

    sent = provider.calls[0]
    assert sent.recipient == "me@example.com"
    assert sent.subject == "Test Email from NextMailer Personal"
    assert "Me &lt;me@example.com&gt;" in sent.html_body
    assert sent.text_body.startswith("Your email configuration works.")


def test_config_check_requires_recipient(client, provider):
    response = client.post("/send-email/test", json={})

    assert response.status_code == 400
    assert provider.calls == []
