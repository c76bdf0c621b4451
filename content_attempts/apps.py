from django.apps import AppConfig


class ContentAttemptsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'content_attempts'
    verbose_name = 'Content Attempts'

    def ready(self):
        """Import signals when app is ready"""
        import content_attempts.signals  # noqa
