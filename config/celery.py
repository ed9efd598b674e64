import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("trekbook")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Archive pending-payment bookings whose session lease expired
    "cleanup-expired-pending-bookings": {
        "task": "bookings.cleanup_expired_pending_bookings",
        "schedule": crontab(minute="*/15"),
        "options": {"expires": 600},
    },
    # Final-payment reminders for partially paid bookings
    "send-partial-payment-reminders": {
        "task": "bookings.send_partial_payment_reminders",
        "schedule": crontab(minute=0, hour=9),
    },
    # Cancel partial bookings past their final payment date
    "auto-cancel-overdue-partial-payments": {
        "task": "bookings.auto_cancel_overdue_partial_payments",
        "schedule": crontab(minute=0, hour=10),
    },
    # Repair cached participant counters of upcoming batches
    "reconcile-upcoming-batches": {
        "task": "bookings.reconcile_upcoming_batches",
        "schedule": crontab(minute=30, hour=2),
    },
}

app.conf.timezone = "Asia/Kolkata"
