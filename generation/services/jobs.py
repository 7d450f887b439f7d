import logging
import threading
import time

import redis
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import Count, F, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from mediaforge.errors import InvalidInputError, InvalidStateError, NotFoundError
from ..models import GenerationJob

logger = logging.getLogger(__name__)

Status = GenerationJob.Status


class JobProgress:
    """Writes pipeline progress onto a job row.

    Every write is a single conditional UPDATE so a redelivered or late worker
    can never move progress backwards or resurrect a finished job.
    """

    def __init__(self, job_id):
        self.job_id = job_id

    def _running(self):
        return GenerationJob.objects.filter(pk=self.job_id, status=Status.RUNNING)

    def start(self, task_id=None):
        now = timezone.now()
        fields = {
            'status': Status.RUNNING,
            'started_at': Coalesce('started_at', Value(now)),
            'attempts': F('attempts') + 1,
            'updated_at': now,
        }
        if task_id:
            fields['celery_task_id'] = task_id
        started = GenerationJob.objects.filter(pk=self.job_id, status__in=GenerationJob.ACTIVE_STATUSES).update(**fields)
        return bool(started)

    def enter(self, stage, path=None):
        fields = {'stage': stage, 'updated_at': timezone.now()}
        if path:
            fields['path'] = path
        self._running().update(**fields)

    def checkpoint(self, percent):
        self._running().filter(progress__lt=percent).update(progress=percent, updated_at=timezone.now())

    def complete(self, video):
        now = timezone.now()
        job = GenerationJob.objects.get(pk=self.job_id)
        return bool(self._running().update(
            status=Status.COMPLETED,
            stage=GenerationJob.Stage.COMPLETED,
            progress=100,
            video=video,
            completed_at=now,
            updated_at=now,
            processing_time_seconds=job.elapsed_seconds(),
        ))

    def fail(self, stage, code, message):
        now = timezone.now()
        job = GenerationJob.objects.get(pk=self.job_id)
        failed = GenerationJob.objects.filter(
            pk=self.job_id, status__in=GenerationJob.ACTIVE_STATUSES,
        ).update(
            status=Status.FAILED,
            stage=GenerationJob.Stage.FAILED,
            error_stage=stage or '',
            error_code=code or '',
            error_message=message or '',
            completed_at=now,
            updated_at=now,
            processing_time_seconds=job.elapsed_seconds(),
        )
        return bool(failed)


def broker_available():
    try:
        return bool(redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=1).ping())
    except (redis.RedisError, ValueError) as e:
        logger.warning("Celery broker unreachable: %s", e)
        return False


class JobRunner:
    def enqueue(self, user, script_id, scripts=None, image_urls=None):
        if not script_id:
            raise InvalidInputError('Script ID is required.')
        for name, value in (('scripts', scripts), ('image_urls', image_urls)):
            if value is not None and not isinstance(value, (list, tuple)):
                raise InvalidInputError(f"'{name}' must be a list.")
        job = GenerationJob.objects.create(
            user=user,
            script_ref=str(script_id),
            provided_scripts=list(scripts or []),
            provided_image_urls=list(image_urls or []),
        )
        self.dispatch(job)
        logger.info("Queued generation job %s for script %s", job.pk, script_id)
        return job

    def dispatch(self, job):
        from ..tasks import run_generation_job

        if settings.RUN_TASK_INLINE or not broker_available():
            logger.info("Running generation job %s inline", job.pk)
            threading.Thread(target=lambda: run_generation_job.apply(args=[str(job.pk)]), daemon=True).start()
            return
        result = run_generation_job.apply_async(args=[str(job.pk)], queue='generation')
        GenerationJob.objects.filter(pk=job.pk).update(celery_task_id=result.id)

    def get_status(self, job_id, user=None):
        qs = GenerationJob.objects.select_related('video')
        if user is not None:
            qs = qs.filter(user=user)
        try:
            return qs.get(pk=job_id)
        except (GenerationJob.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Job with ID {job_id} not found.", entity_id=job_id)

    def watch(self, job_id, user=None, interval=None, timeout=None):
        """Yield the job each time its status, stage or progress changes.

        The lookup happens eagerly so an unknown job fails before streaming
        starts. Iteration ends once the job is terminal or ``timeout`` elapses.
        """
        job = self.get_status(job_id, user=user)
        interval = settings.GENERATION_STREAM_INTERVAL if interval is None else interval
        timeout = settings.GENERATION_STREAM_TIMEOUT if timeout is None else timeout
        return self._watch(job, interval, time.monotonic() + timeout)

    def _watch(self, job, interval, deadline):
        last = None
        while True:
            snapshot = (job.status, job.stage, job.progress)
            if snapshot != last:
                last = snapshot
                yield job
            if job.is_terminal or time.monotonic() >= deadline:
                return
            time.sleep(interval)
            job.refresh_from_db()

    def list_jobs(self, status=None, user=None):
        qs = GenerationJob.objects.select_related('video')
        if status:
            if status not in Status.values:
                raise InvalidInputError(f"Unknown job status '{status}'.")
            qs = qs.filter(status=status)
        if user is not None:
            qs = qs.filter(user=user)
        return qs

    def counts(self):
        rows = GenerationJob.objects.values('status').annotate(n=Count('id')).order_by()
        found = {row['status']: row['n'] for row in rows}
        return {s: found.get(s, 0) for s in Status.values}

    def retry(self, job_id, user=None):
        original = self.get_status(job_id, user=user)
        if original.status != Status.FAILED:
            raise InvalidStateError('Only failed jobs can be retried.', entity_id=job_id)
        job = GenerationJob.objects.create(
            user=original.user,
            script_ref=original.script_ref,
            provided_scripts=original.provided_scripts,
            provided_image_urls=original.provided_image_urls,
            retry_of=original,
        )
        self.dispatch(job)
        logger.info("Retrying failed job %s as %s", original.pk, job.pk)
        return job
