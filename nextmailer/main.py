# main.py
from dotenv import load_dotenv
load_dotenv()

import time
import uuid
from fastapi import FastAPI, Request, Response
from nextmailer.routers import campaigns, send_email
from nextmailer.db import engine
from nextmailer.logging_config import get_logger
from nextmailer.routers.webhooks_ses import router as ses_webhooks_router

logger = get_logger("nextmailer", component="api")

app = FastAPI(title="NextMailer Personal")


@app.on_event("startup")
def on_startup():
    logger.info("API started", extra={"db_url": engine.url.render_as_string(hide_password=True)})


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start = time.time()

    try:
        response: Response = await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
            },
        )
        raise

    duration_ms = int((time.time() - start) * 1000)

    logger.info(
        "request",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )

    response.headers["x-request-id"] = request_id
    return response

app.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
app.include_router(send_email.router, prefix="/send-email", tags=["email"])

app.include_router(ses_webhooks_router)


@app.get("/health")
def health():
    return {"ok": True}
