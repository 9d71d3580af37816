from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from uuid import UUID

from celery.result import AsyncResult

from nextmailer.analytics import summarize_campaign
from nextmailer.celery_app import celery_app
from nextmailer.db import get_db
from nextmailer.models import Campaign
from nextmailer.schemas import SendQueued, TaskStatus, AnalyticsSummaryOut
from nextmailer.tasks import active_subscribers

router = APIRouter()


@router.post("/{campaign_id}/send", response_model=SendQueued)
def send_campaign(campaign_id: UUID, db: Session = Depends(get_db)):
    """
    Queues a bulk send. Checks are repeated by the worker; doing them here
    gives the caller a clean 4xx instead of a failed task.
    """
    campaign = db.query(Campaign).get(campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    if campaign.status != "draft":
        raise HTTPException(status_code=400, detail="Campaign is not in draft status")

    recipients = len(active_subscribers(db, campaign))
    if recipients == 0:
        raise HTTPException(status_code=400, detail="No active subscribers found")

    task = celery_app.send_task("tasks.send_campaign", args=[str(campaign_id)])

    return SendQueued(
        status="queued",
        task_id=task.id,
        campaign_id=campaign_id,
        recipient_count=recipients,
    )


@router.get("/tasks/{task_id}", response_model=TaskStatus)
def get_task_status(task_id: str):
    res = AsyncResult(task_id, app=celery_app)

    payload = TaskStatus(task_id=task_id, state=res.state)
    if res.successful():
        payload.result = res.result
    elif res.failed():
        payload.error = str(res.result)
    return payload


@router.get("/{campaign_id}/analytics", response_model=AnalyticsSummaryOut)
def get_campaign_analytics(campaign_id: UUID, db: Session = Depends(get_db)):
    campaign = db.query(Campaign).get(campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")

    return AnalyticsSummaryOut(campaign_id=campaign_id, **summarize_campaign(db, campaign_id))
