from django.apps import AppConfig


class EmergencyConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'emergency'

    def ready(self):  # pragma: no cover - import side-effects
        from . import signals  # noqa: F401
