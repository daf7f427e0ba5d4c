from dataclasses import dataclass

from django.apps import apps

from .config import PipelineConfig
from .identity import OwnerPolicy
from .jobqueue import JobQueue
from .s3 import ObjectStore
from .transcoding import TranscodeDispatcher
from .uploads import UploadCoordinator
from .worker import TranscodeWorker, build_reporter


@dataclass(frozen=True)
class Pipeline:
    """Explicitly wired collaborators; built once per process by the app config."""

    config: PipelineConfig
    store: ObjectStore
    queue: JobQueue
    policy: OwnerPolicy

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "Pipeline":
        return cls(config=config, store=ObjectStore(config), queue=JobQueue(config), policy=OwnerPolicy())

    def coordinator(self) -> UploadCoordinator:
        return UploadCoordinator(self.store, self.config, self.policy)

    def dispatcher(self) -> TranscodeDispatcher:
        return TranscodeDispatcher(self.queue, self.policy)

    def worker(self, reporter=None) -> TranscodeWorker:
        return TranscodeWorker(self.config, self.store, self.queue, reporter or build_reporter(self.config))


def get_pipeline() -> Pipeline:
    return apps.get_app_config("videos").pipeline
