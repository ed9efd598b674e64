"""Notifications app package.

Outbound booking messages (confirmation, cancellation, reschedule,
payment reminders, admin alerts) delivered by email through Django's
mail backend. Senders are called from Celery tasks, never from requests.
"""
