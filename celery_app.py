"""Celery application configuration for invoicing background tasks."""

from celery import Celery
from celery.signals import setup_logging

from src.config import settings

celery = Celery("afip_invoicing")

celery.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # --- Queue routing per job type ---
    task_routes={
        "src.modules.invoicing.tasks.process_pending_invoice_orders": {"queue": "invoicing"},
    },
    # --- Reliability settings ---
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    broker_transport_options={
        "max_retries": 10,
        "interval_start": 0.2,
        "interval_step": 0.5,
        "interval_max": 5.0,
        "retry_on_timeout": True,
        "visibility_timeout": 3600,
    },
    # --- Beat schedule ---
    beat_schedule={
        "process-pending-invoice-orders": {
            "task": "src.modules.invoicing.tasks.process_pending_invoice_orders",
            "schedule": settings.issuer_worker_poll_seconds,
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    from src.logging_config import configure_logging

    configure_logging(settings.log_level)


celery.autodiscover_tasks(["src.modules.invoicing"])
