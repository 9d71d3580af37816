import os
import re
from typing import Optional
from urllib.parse import urlencode

import requests

from nextmailer.email_providers.base import EmailPayload, DispatchOutcome
from nextmailer.email_providers.sigv4 import sign_request
from nextmailer.logging_config import get_logger

logger = get_logger("nextmailer", component="ses")

MESSAGE_ID_RE = re.compile(r"<MessageId>(.*?)</MessageId>", re.DOTALL)
ERROR_CODE_RE = re.compile(r"<Code>(.*?)</Code>", re.DOTALL)
ERROR_MESSAGE_RE = re.compile(r"<Message>(.*?)</Message>", re.DOTALL)

THROTTLING_CODES = {"Throttling", "ThrottlingException"}


class SesEmailProvider:
    """
    SES Query API (SendEmail) over plain HTTPS with a SigV4 signature.
    """

    name = "ses"

    def __init__(
        self,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.region = region or os.getenv("AWS_REGION")
        self.access_key_id = access_key_id or os.getenv("AWS_ACCESS_KEY_ID")
        self.secret_access_key = secret_access_key or os.getenv("AWS_SECRET_ACCESS_KEY")

        if not self.region or not self.access_key_id or not self.secret_access_key:
            raise RuntimeError("AWS_REGION, AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set")

        self.host = f"email.{self.region}.amazonaws.com"
        self.endpoint = f"https://{self.host}/"
        self.timeout = float(os.getenv("SES_TIMEOUT_SECONDS", "10"))
        self.session = session or requests.Session()

    def _build_params(self, payload: EmailPayload) -> dict:
        params = {
            "Action": "SendEmail",
            "Version": "2010-12-01",
            "Source": payload.source,
            "Destination.ToAddresses.member.1": payload.recipient,
            "Message.Subject.Data": payload.subject,
            "Message.Subject.Charset": "UTF-8",
            "Message.Body.Html.Data": payload.html_body,
            "Message.Body.Html.Charset": "UTF-8",
        }
        if payload.text_body:
            params["Message.Body.Text.Data"] = payload.text_body
            params["Message.Body.Text.Charset"] = "UTF-8"
        return params

    def send_email(self, payload: EmailPayload) -> DispatchOutcome:
        body = urlencode(self._build_params(payload))
        headers = sign_request(
            "POST",
            self.host,
            "/",
            body,
            region=self.region,
            service="ses",
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
        )
        headers["Content-Type"] = "application/x-www-form-urlencoded"

        try:
            response = self.session.post(
                self.endpoint,
                data=body.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return DispatchOutcome.failed(self.name, f"SES request failed: {e}")

        text = response.text or ""

        if response.status_code >= 400:
            code_match = ERROR_CODE_RE.search(text)
            msg_match = ERROR_MESSAGE_RE.search(text)
            code = code_match.group(1).strip() if code_match else ""
            message = msg_match.group(1).strip() if msg_match else ""

            throttled = (
                response.status_code == 429
                or code in THROTTLING_CODES
                or "maximum sending rate exceeded" in message.lower()
            )

            reason = f"SES API error {response.status_code}"
            if code:
                reason += f" {code}"
            if message:
                reason += f": {message}"

            logger.warning(
                "ses_send_rejected",
                extra={"status_code": response.status_code, "error_code": code, "throttled": throttled},
            )
            return DispatchOutcome.failed(self.name, reason, throttled=throttled)

        m = MESSAGE_ID_RE.search(text)
        return DispatchOutcome.ok(self.name, m.group(1).strip() if m else None)
