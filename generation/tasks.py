import logging

from celery import shared_task
from django.conf import settings
from django.db import connection
from django.db.utils import InterfaceError, OperationalError

from mediaforge.errors import PersistenceError, UpstreamGenerationError
from .models import GenerationJob
from .services.jobs import JobProgress
from .services.orchestrator import GenerationOrchestrator, StageFailed

logger = logging.getLogger(__name__)


def _release_connection():
    if not connection.in_atomic_block:
        connection.close()


def _record_completion(progress, video):
    """Mark the job completed, retrying once on a fresh connection.

    A database error must not escape to autoretry, which would rerun the
    pipeline for a video that already exists.
    """
    for attempt in (1, 2):
        try:
            return progress.complete(video)
        except (OperationalError, InterfaceError) as e:
            logger.warning("Recording completion of job %s failed (attempt %d): %s", progress.job_id, attempt, e)
            _release_connection()
    raise PersistenceError(f"Could not mark job {progress.job_id} completed.", artifact_url=video.url)


@shared_task(queue='generation', bind=True, autoretry_for=(OperationalError, InterfaceError), retry_kwargs={'max_retries': 3, 'countdown': 5})
def run_generation_job(self, job_id):
    _release_connection()
    try:
        job = GenerationJob.objects.select_related('user').get(id=job_id)
    except GenerationJob.DoesNotExist:
        logger.warning("Generation job %s no longer exists", job_id)
        return None
    if job.is_terminal:
        logger.info("Generation job %s already %s, skipping redelivery", job.pk, job.status)
        return job.status

    progress = JobProgress(job.pk)
    if not progress.start(task_id=self.request.id):
        return None
    orchestrator = GenerationOrchestrator(reporter=progress)
    try:
        video = orchestrator.run(
            job.user,
            job.script_ref,
            provided_scripts=job.provided_scripts,
            provided_image_urls=job.provided_image_urls,
        )
    except StageFailed as e:
        _release_connection()
        max_retries = settings.GENERATION_MAX_RETRIES
        if isinstance(e.error, UpstreamGenerationError) and self.request.retries < max_retries:
            countdown = settings.GENERATION_RETRY_BACKOFF * (2 ** self.request.retries)
            logger.warning("Generation job %s failed at %s, retrying in %ss: %s", job.pk, e.stage, countdown, e.message)
            raise self.retry(exc=e, countdown=countdown, max_retries=max_retries)
        progress.fail(e.stage, e.code, e.message)
        logger.error("Generation job %s failed at %s: %s", job.pk, e.stage, e.message)
        return GenerationJob.Status.FAILED.value

    _record_completion(progress, video)
    logger.info("Generation job %s completed with video %s", job.pk, video.pk)
    return GenerationJob.Status.COMPLETED.value
