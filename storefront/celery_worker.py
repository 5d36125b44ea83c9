# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# taski trzeba zaimportowac explicite, inaczej worker ich nie zarejestruje
celery_app.conf.imports = (
    "storefront.tasks.abandon",
)

celery_app.conf.beat_schedule = {
    "abandon-stale-carts-every-5-minutes": {
        "task": "storefront.tasks.abandon.abandon_stale_carts_task",
        "schedule": 300.0,
    },
}

celery_app.conf.timezone = "UTC"
