# shopcore/celery_worker.py
from celery import Celery

from shopcore.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "shopcore",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#tasks must be imported explicitly for celery to register them
celery_app.conf.imports = (
    "shopcore.tasks.expire",
)

celery_app.conf.beat_schedule = {
    "expire-carts-every-minute": {
        "task": "shopcore.tasks.expire.expire_carts_task",
        "schedule": 60.0,
    },
}

celery_app.conf.timezone = "UTC"
