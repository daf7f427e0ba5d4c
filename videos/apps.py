from django.apps import AppConfig


class VideosConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "videos"
    pipeline = None

    def ready(self):
        from django.conf import settings

        from .config import PipelineConfig
        from .services import Pipeline

        # One set of boto3 clients per process
        self.pipeline = Pipeline.from_config(PipelineConfig.from_settings(settings))
