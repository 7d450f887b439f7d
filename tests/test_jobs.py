from types import SimpleNamespace
from unittest import mock

import pytest
from django.db.utils import OperationalError

from generation.models import GenerationJob, Video
from generation.services.jobs import JobProgress, JobRunner
from generation.tasks import run_generation_job
from mediaforge.errors import InvalidInputError, InvalidStateError, NotFoundError, PersistenceError

pytestmark = pytest.mark.django_db


@pytest.fixture
def no_dispatch():
    with mock.patch.object(JobRunner, 'dispatch') as dispatch:
        yield dispatch


@pytest.fixture
def backend(fake_gen):
    with mock.patch('generation.services.orchestrator.ContentGenClient', return_value=fake_gen):
        yield fake_gen


def make_job(user, script, **kwargs):
    return GenerationJob.objects.create(user=user, script_ref=str(script.pk), **kwargs)


class TestJobRunner:
    def test_enqueue_creates_queued_job(self, user, script, no_dispatch):
        job = JobRunner().enqueue(user, script.pk, scripts=['a'], image_urls=['u'])
        assert job.status == GenerationJob.Status.QUEUED
        assert job.progress == 0
        assert job.provided_scripts == ['a']
        no_dispatch.assert_called_once_with(job)

    def test_enqueue_requires_script(self, user, no_dispatch):
        with pytest.raises(InvalidInputError):
            JobRunner().enqueue(user, None)
        assert not no_dispatch.called

    def test_enqueue_rejects_non_list_fragments(self, user, script, no_dispatch):
        with pytest.raises(InvalidInputError):
            JobRunner().enqueue(user, script.pk, scripts='frag1 frag2')

    def test_dispatch_uses_generation_queue(self, user, script, settings):
        settings.RUN_TASK_INLINE = False
        job = make_job(user, script)
        with mock.patch('generation.services.jobs.broker_available', return_value=True), \
                mock.patch('generation.tasks.run_generation_job') as task:
            task.apply_async.return_value = SimpleNamespace(id='task-1')
            JobRunner().dispatch(job)
        task.apply_async.assert_called_once_with(args=[str(job.pk)], queue='generation')
        job.refresh_from_db()
        assert job.celery_task_id == 'task-1'

    def test_get_status_is_scoped_to_user(self, user, other_user, script):
        job = make_job(user, script)
        assert JobRunner().get_status(job.pk, user=user) == job
        with pytest.raises(NotFoundError):
            JobRunner().get_status(job.pk, user=other_user)
        with pytest.raises(NotFoundError):
            JobRunner().get_status('garbage')

    def test_list_jobs_filters_by_status(self, user, script):
        make_job(user, script)
        make_job(user, script, status=GenerationJob.Status.FAILED)
        runner = JobRunner()
        assert runner.list_jobs(status='failed').count() == 1
        assert runner.counts()['queued'] == 1
        with pytest.raises(InvalidInputError):
            runner.list_jobs(status='exploded')

    def test_retry_only_failed_jobs(self, user, script, no_dispatch):
        failed = make_job(user, script, status=GenerationJob.Status.FAILED, provided_scripts=['x'])
        retry = JobRunner().retry(failed.pk)
        assert retry.retry_of == failed
        assert retry.provided_scripts == ['x']
        assert retry.status == GenerationJob.Status.QUEUED

        done = make_job(user, script, status=GenerationJob.Status.COMPLETED)
        with pytest.raises(InvalidStateError):
            JobRunner().retry(done.pk)


class TestJobProgress:
    def test_progress_never_decreases(self, user, script):
        job = make_job(user, script)
        progress = JobProgress(job.pk)
        assert progress.start()
        progress.checkpoint(40)
        progress.checkpoint(10)
        job.refresh_from_db()
        assert job.progress == 40
        assert job.attempts == 1
        assert job.started_at is not None

    def test_terminal_transition_happens_once(self, user, script):
        job = make_job(user, script)
        progress = JobProgress(job.pk)
        progress.start()
        assert progress.fail('generating', 'upstream_generation_error', 'boom')
        assert not progress.fail('assembling', 'other', 'again')
        progress.checkpoint(100)
        job.refresh_from_db()
        assert job.status == GenerationJob.Status.FAILED
        assert job.error_stage == 'generating'
        assert job.progress == 0


class TestRunGenerationJob:
    def test_completes_job(self, user, script, backend):
        job = make_job(user, script)
        result = run_generation_job.apply(args=[str(job.pk)])

        assert result.get() == 'completed'
        job.refresh_from_db()
        assert job.status == GenerationJob.Status.COMPLETED
        assert job.stage == GenerationJob.Stage.COMPLETED
        assert job.path == GenerationJob.Path.SCRATCH
        assert job.progress == 100
        assert job.video is not None
        assert job.processing_time_seconds is not None

    def test_records_failing_stage(self, user, script, backend):
        backend.fail_on.add('generate_image')
        job = make_job(user, script)
        run_generation_job.apply(args=[str(job.pk)])

        job.refresh_from_db()
        assert job.status == GenerationJob.Status.FAILED
        assert job.error_stage == 'generating'
        assert job.error_code == 'upstream_generation_error'
        assert 'backend exploded' in job.error_message
        assert job.progress == 40
        assert job.video is None

    def test_missing_script_fails_as_not_found(self, user, script, backend):
        job = GenerationJob.objects.create(user=user, script_ref='not-a-uuid')
        run_generation_job.apply(args=[str(job.pk)])
        job.refresh_from_db()
        assert job.status == GenerationJob.Status.FAILED
        assert job.error_stage == 'validating'
        assert job.error_code == 'not_found'

    def test_redelivered_terminal_job_is_skipped(self, user, script, backend):
        job = make_job(user, script, status=GenerationJob.Status.COMPLETED, progress=100)
        assert run_generation_job.apply(args=[str(job.pk)]).get() == 'completed'
        assert backend.calls == []

    def test_reuse_path_from_job_inputs(self, user, script, backend):
        job = make_job(user, script, provided_scripts=['frag1', 'frag2'], provided_image_urls=['u1', 'u2'])
        run_generation_job.apply(args=[str(job.pk)])
        job.refresh_from_db()
        assert job.status == GenerationJob.Status.COMPLETED
        assert job.path == GenerationJob.Path.REUSE
        assert backend.count('generate_image') == 0

    def test_completion_write_failure_does_not_rerun_pipeline(self, user, script, backend, monkeypatch):
        def broken_complete(self, video):
            raise OperationalError('server closed the connection unexpectedly')

        monkeypatch.setattr(JobProgress, 'complete', broken_complete)
        job = make_job(user, script)
        result = run_generation_job.apply(args=[str(job.pk)])

        assert result.failed()
        assert isinstance(result.result, PersistenceError)
        assert backend.count('generate_video') == 1
        assert Video.objects.count() == 1

    def test_completion_write_is_retried_once(self, user, script, backend, monkeypatch):
        real_complete = JobProgress.complete
        attempts = []

        def flaky_complete(self, video):
            attempts.append(video.pk)
            if len(attempts) == 1:
                raise OperationalError('connection reset')
            return real_complete(self, video)

        monkeypatch.setattr(JobProgress, 'complete', flaky_complete)
        job = make_job(user, script)
        assert run_generation_job.apply(args=[str(job.pk)]).get() == 'completed'
        job.refresh_from_db()
        assert job.status == GenerationJob.Status.COMPLETED
        assert len(attempts) == 2


class TestWatch:
    def test_stops_at_terminal_state(self, user, script):
        job = make_job(user, script, status=GenerationJob.Status.COMPLETED, progress=100)
        updates = list(JobRunner().watch(job.pk, user=user, interval=0, timeout=5))
        assert [u.status for u in updates] == ['completed']

    def test_emits_only_changes_until_timeout(self, user, script):
        job = make_job(user, script, status=GenerationJob.Status.RUNNING, progress=40)
        updates = list(JobRunner().watch(job.pk, interval=0.01, timeout=0.05))
        assert len(updates) == 1
        assert updates[0].progress == 40

    def test_unknown_job_fails_before_streaming(self, user):
        with pytest.raises(NotFoundError):
            JobRunner().watch('not-a-job', user=user)
