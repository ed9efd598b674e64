from django.apps import AppConfig


class TreksConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.treks"
