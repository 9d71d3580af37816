"""
AWS Signature Version 4 for the SES Query API.

Signs `host` and `x-amz-date` by default; any extra headers passed in are
lower-cased and signed as well.
"""
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Optional

ALGORITHM = "AWS4-HMAC-SHA256"


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def signing_key(secret_access_key: str, date_stamp: str, region: str, service: str) -> bytes:
    k_date = _hmac(("AWS4" + secret_access_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def canonical_request(
    method: str,
    path: str,
    query: str,
    headers: Dict[str, str],
    payload_hash: str,
) -> tuple[str, str]:
    """Returns (canonical_request, signed_headers)."""
    normalized = {k.lower().strip(): " ".join(str(v).split()) for k, v in headers.items()}
    names = sorted(normalized)
    canonical_headers = "".join(f"{n}:{normalized[n]}\n" for n in names)
    signed_headers = ";".join(names)

    req = "\n".join([
        method.upper(),
        path or "/",
        query,
        canonical_headers,
        signed_headers,
        payload_hash,
    ])
    return req, signed_headers


def sign_request(
    method: str,
    host: str,
    path: str,
    body: str,
    *,
    region: str,
    service: str,
    access_key_id: str,
    secret_access_key: str,
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    if not access_key_id or not secret_access_key or not region:
        raise RuntimeError("AWS credentials not configured")

    now = now or datetime.now(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = now.strftime("%Y%m%d")

    to_sign = dict(headers or {})
    to_sign["host"] = host
    to_sign["x-amz-date"] = amz_date

    payload_hash = _sha256_hex(body.encode("utf-8"))
    creq, signed_headers = canonical_request(method, path, query, to_sign, payload_hash)

    credential_scope = f"{date_stamp}/{region}/{service}/aws4_request"
    string_to_sign = "\n".join([
        ALGORITHM,
        amz_date,
        credential_scope,
        _sha256_hex(creq.encode("utf-8")),
    ])

    key = signing_key(secret_access_key, date_stamp, region, service)
    signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    authorization = (
        f"{ALGORITHM} Credential={access_key_id}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )

    return {
        "Authorization": authorization,
        "X-Amz-Date": amz_date,
        "Host": host,
    }
