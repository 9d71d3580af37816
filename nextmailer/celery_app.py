# celery_app.py
from dotenv import load_dotenv
load_dotenv()

import os
from celery import Celery

BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", BROKER_URL)

celery_app = Celery(
    "nextmailer",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
    include=["nextmailer.tasks"],
)

celery_app.conf.task_track_started = True
# one paced send at a time per worker process
celery_app.conf.worker_prefetch_multiplier = 1
