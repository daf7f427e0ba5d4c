import dataclasses
import logging
import signal
import threading

from django.core.management.base import BaseCommand

from videos.services import get_pipeline

logger = logging.getLogger("videos.worker")


class Command(BaseCommand):
    help = "Consume transcode jobs from the job queue until interrupted."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Poll the queue a single time and exit.")
        parser.add_argument("--concurrency", type=int, help="Override WORKER_CONCURRENCY for this process.")

    def handle(self, *args, **options):
        pipeline = get_pipeline()
        if options.get("concurrency"):
            config = dataclasses.replace(pipeline.config, worker_concurrency=options["concurrency"])
            pipeline = dataclasses.replace(pipeline, config=config)
        worker = pipeline.worker()

        if options["once"]:
            handled = worker.poll_once()
            self.stdout.write(f"Handled {handled} message(s)")
            return

        stop = threading.Event()

        def _stop(signum, frame):
            logger.info("Received signal %s; finishing current jobs", signum)
            stop.set()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)
        worker.run_forever(stop)
