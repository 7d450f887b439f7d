"""Video generation pipeline.

validating -> (reusing_provided | generating) -> assembling, with progress
checkpoints at 5, 10, 40, 70 and 100. Remote calls inside a stage run
concurrently; all database writes happen on the thread that called ``run``.
"""
import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from functools import partial

from django.conf import settings

from mediaforge.errors import ServiceError, UpstreamGenerationError
from ..models import GenerationJob, TTSProvider, VideoMode
from .assets import AudioService, ImageService, ScriptService, VideoService
from .content_gen import ContentGenClient

logger = logging.getLogger(__name__)

Stage = GenerationJob.Stage
Path = GenerationJob.Path


class StageFailed(Exception):
    def __init__(self, stage, error):
        self.stage = stage
        self.error = error
        if isinstance(error, ServiceError):
            self.code = error.code
            self.message = error.message
        else:
            self.code = 'internal_error'
            self.message = str(error) or error.__class__.__name__
        super().__init__(f"{stage}: {self.message}")


class NullReporter:
    def enter(self, stage, path=None):
        pass

    def checkpoint(self, percent):
        pass


def run_concurrently(calls, stage, timeout=None, on_result=None, max_workers=None):
    """Run zero-argument callables in parallel and join them.

    ``calls`` maps a key to a callable. ``on_result(key, value)`` is invoked on
    the calling thread as each call finishes. On the first failure, calls that
    have not started are cancelled, calls already running are waited for (up
    to the stage deadline) and their successful results still reach
    ``on_result`` before the failure is raised.
    """
    results = {}
    if not calls:
        return results
    executor = ThreadPoolExecutor(max_workers=max_workers or len(calls), thread_name_prefix=f"gen-{stage}")
    pending = {executor.submit(fn): key for key, fn in calls.items()}
    deadline = time.monotonic() + timeout if timeout else None
    try:
        while pending:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise UpstreamGenerationError(stage, f"Stage '{stage}' timed out after {timeout:g}s.")
            done, _ = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
            for future in done:
                key = pending.pop(future)
                value = future.result()
                results[key] = value
                if on_result is not None:
                    on_result(key, value)
    except Exception:
        _drain(pending, on_result, deadline)
        raise
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return results


def _drain(pending, on_result, deadline):
    running = [f for f in pending if not f.cancel()]
    if not running or on_result is None:
        return
    remaining = None if deadline is None else max(0, deadline - time.monotonic())
    done, _ = wait(running, timeout=remaining)
    for future in done:
        if future.exception() is not None:
            continue
        try:
            on_result(pending[future], future.result())
        except ServiceError as e:
            logger.warning("Could not keep result of %s after stage failure: %s", pending[future], e)


class GenerationOrchestrator:
    def __init__(self, content_gen=None, reporter=None, stage_timeout=None,
                 transition_duration=None, image_workers=None):
        self.content_gen = content_gen or ContentGenClient()
        self.scripts = ScriptService(self.content_gen)
        self.audios = AudioService(self.content_gen, self.scripts)
        self.images = ImageService(self.content_gen)
        self.videos = VideoService(self.content_gen, self.scripts)
        self.reporter = reporter or NullReporter()
        self.stage_timeout = stage_timeout if stage_timeout is not None else settings.GENERATION_STAGE_TIMEOUT
        self.transition_duration = (
            transition_duration if transition_duration is not None else settings.GENERATION_TRANSITION_DURATION
        )
        self.image_workers = image_workers or settings.GENERATION_IMAGE_WORKERS

    def run(self, owner, script_id, provided_scripts=None, provided_image_urls=None,
            provider=TTSProvider.OPENAI, mode=VideoMode.SIMPLE):
        provided_scripts = list(provided_scripts or [])
        provided_image_urls = list(provided_image_urls or [])
        stage = Stage.VALIDATING
        try:
            self.reporter.enter(stage)
            self.reporter.checkpoint(5)
            script = self._load_script(script_id, owner, provided_scripts)
            self.reporter.checkpoint(10)

            if provided_scripts and provided_image_urls:
                stage = Stage.REUSING_PROVIDED
                self.reporter.enter(stage, Path.REUSE)
                audio = self._audio_only(script, owner, provider)
                self.reporter.checkpoint(40)
                image_urls, narration = provided_image_urls, provided_scripts
                self.reporter.checkpoint(70)
            else:
                stage = Stage.GENERATING
                self.reporter.enter(stage, Path.SCRATCH)
                audio, prompts = self._audio_and_prompts(script, owner, provider)
                self.reporter.checkpoint(40)
                image_urls = self._render_images(prompts, script.style, owner)
                narration = [p.script or p.prompt for p in prompts]
                self.reporter.checkpoint(70)

            stage = Stage.ASSEMBLING
            self.reporter.enter(stage)
            video = self.videos.create(
                image_urls, audio.url, script.pk, owner,
                scripts=narration, transition_duration=self.transition_duration, mode=mode,
            )
            self.reporter.checkpoint(100)
        except Exception as e:
            logger.warning("Generation for script %s failed during %s: %s", script_id, stage, e)
            raise StageFailed(stage, e) from e
        logger.info("Generated video %s for script %s (%d images)", video.pk, script.pk, len(image_urls))
        return video

    def generate_images(self, content, style, owner):
        prompts = self.scripts.derive_image_prompts(content, style)
        if not prompts:
            raise UpstreamGenerationError('image_prompts', 'The generation backend returned no image prompts.')
        return {
            'image_urls': self._render_images(prompts, style, owner),
            'scripts': [p.script or p.prompt for p in prompts],
        }

    def _load_script(self, script_id, owner, provided_scripts):
        script = self.scripts.find_one(script_id, owner=owner)
        joined = ' '.join(provided_scripts)
        if provided_scripts and joined != script.content:
            logger.info("Replacing content of script %s with %d provided fragments", script.pk, len(provided_scripts))
            script = self.scripts.update(script.pk, content=joined)
        return script

    def _audio_only(self, script, owner, provider):
        generated = self.audios.synthesize(script.content, provider)
        return self.audios.record(script, owner, provider, generated)

    def _audio_and_prompts(self, script, owner, provider):
        saved = {}

        def persist(key, value):
            if key == 'audio':
                saved['audio'] = self.audios.record(script, owner, provider, value)

        results = run_concurrently(
            {
                'audio': partial(self.audios.synthesize, script.content, provider),
                'prompts': partial(self.scripts.derive_image_prompts, script.content, script.style),
            },
            Stage.GENERATING,
            timeout=self.stage_timeout,
            on_result=persist,
        )
        prompts = results['prompts']
        if not prompts:
            raise UpstreamGenerationError('image_prompts', 'The generation backend returned no image prompts.')
        return saved['audio'], prompts

    def _render_images(self, prompts, style, owner):
        def persist(index, url):
            self.images.record(prompts[index].prompt, style, owner, url)

        results = run_concurrently(
            {i: partial(self.images.render, p.prompt) for i, p in enumerate(prompts)},
            Stage.GENERATING,
            timeout=self.stage_timeout,
            on_result=persist,
            max_workers=min(len(prompts), self.image_workers),
        )
        return [results[i] for i in range(len(prompts))]
