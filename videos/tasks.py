"""
Periodic maintenance that keeps records and objects consistent. They are linked
by key naming only, with no transactional tie between them.
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from . import keys, records
from .errors import NotFound
from .models import Variant, Video
from .services import get_pipeline

logger = logging.getLogger(__name__)


def _fail_stale_processing(config, now) -> int:
    """processing rows nobody has touched for longer than any job could run"""
    cutoff = now - timedelta(seconds=config.stale_processing_seconds)
    stale = Variant.objects.filter(transcode_status=Variant.Status.PROCESSING, updated_at__lt=cutoff)
    failed = 0
    for v in stale.iterator():
        if records.mark_variant_failed(v.owner, v.video_id, v.variant_id, "stale: no worker finished this job"):
            failed += 1
    return failed


def _fail_completed_without_object(store) -> int:
    repaired = 0
    completed = Variant.objects.filter(transcode_status=Variant.Status.COMPLETED)
    for v in completed.iterator():
        if store.stat(v.object_key).exists:
            continue
        # Direct patch: mark_variant_failed never downgrades a completed row
        try:
            records.patch_variant(
                v.owner, v.video_id, v.variant_id,
                transcode_status=Variant.Status.FAILED,
                url="",
                error_message=f"object {v.object_key} missing",
            )
        except NotFound:
            continue
        logger.warning("Variant %s marked failed: object %s missing", v.variant_id, v.object_key)
        repaired += 1
    return repaired


def _delete_orphan_objects(store, config, now) -> int:
    cutoff = now - timedelta(seconds=config.orphan_grace_seconds)
    deleted = 0
    for prefix in (keys.ORIGINAL_PREFIX, keys.VARIANTS_PREFIX):
        for key, last_modified in store.iter_objects(prefix):
            video_id = keys.video_id_from_key(key)
            if video_id is None or (last_modified and last_modified > cutoff):
                continue
            if Video.objects.filter(pk=video_id).exists():
                continue
            store.delete(key)
            logger.info("Deleted orphan object %s", key)
            deleted += 1
    return deleted


def reconcile(pipeline, now=None) -> dict:
    now = now or timezone.now()
    summary = {
        "staleFailed": _fail_stale_processing(pipeline.config, now),
        "missingObjects": _fail_completed_without_object(pipeline.store),
        "orphansDeleted": _delete_orphan_objects(pipeline.store, pipeline.config, now),
    }
    logger.info("Reconciliation finished: %s", summary)
    return summary


@shared_task(bind=True)
def reconcile_variants(self):
    return reconcile(get_pipeline())
