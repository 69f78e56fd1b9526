# portal_core/apps.py

from django.apps import AppConfig


class PortalCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "portal_core"
    verbose_name = "Lab Portal"

    def ready(self):
        from . import signals  # noqa
