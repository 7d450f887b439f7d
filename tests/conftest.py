import threading
import time

import pytest
from django.core.cache import caches
from rest_framework.test import APIClient

from generation.models import Script, Video
from generation.services.content_gen import GeneratedAudio, GenerationBackendError, ImagePrompt


class FakeContentGen:
    """In-memory stand-in for the generation backend client."""

    def __init__(self, prompts=None, fail_on=()):
        self.calls = []
        self._lock = threading.Lock()
        self.prompts = prompts if prompts is not None else [
            ImagePrompt('a red boat at dawn', 'The boat leaves the harbour.'),
            ImagePrompt('a storm over the sea', ''),
            ImagePrompt('a lighthouse', 'The keeper lights the lamp.'),
        ]
        self.fail_on = set(fail_on)
        self.fail_prompts = set()
        self.delays = {}

    def _record(self, op, *args):
        time.sleep(self.delays.get(op, 0))
        with self._lock:
            self.calls.append((op, args))
        if op in self.fail_on:
            raise GenerationBackendError(op, 'backend exploded', 500)

    def count(self, op):
        return sum(1 for name, _ in self.calls if name == op)

    def generate_script(self, title, style, language=None):
        self._record('generate_script', title, style, language)
        return f"A {style} script about {title}."

    def generate_image(self, prompt):
        self._record('generate_image', prompt)
        time.sleep(self.delays.get(prompt, 0))
        if prompt in self.fail_prompts:
            raise GenerationBackendError('generate_image', 'backend exploded', 500)
        return 'https://cdn.test/img/' + prompt.replace(' ', '-') + '.png'

    def generate_image_prompts(self, content, style):
        self._record('generate_image_prompts', content, style)
        return list(self.prompts)

    def generate_audio(self, script_text, provider='OPENAI'):
        self._record('generate_audio', script_text, provider)
        return GeneratedAudio(url='https://cdn.test/audio/narration.mp3', duration=12.5)

    def generate_video(self, image_urls, scripts, audio_url, mode='simple', transition_duration=None):
        self._record('generate_video', list(image_urls), list(scripts), audio_url, mode, transition_duration)
        return 'https://cdn.test/video/final.mp4'

    def preview_voice(self, voice_id=None):
        self._record('preview_voice', voice_id)
        return {'voice_id': voice_id or 'alloy', 'url': 'https://cdn.test/voices/alloy.mp3'}


class RecordingReporter:
    def __init__(self):
        self.stages = []
        self.checkpoints = []

    def enter(self, stage, path=None):
        self.stages.append((str(stage), str(path) if path else None))

    def checkpoint(self, percent):
        self.checkpoints.append(percent)


@pytest.fixture(autouse=True)
def clear_caches():
    for alias in ('default', 'oauth', 'stats', 'analytics'):
        caches[alias].clear()
    yield


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username='alice', password='secret')


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(username='bob', password='secret')


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def fake_gen():
    return FakeContentGen()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def script(user):
    return Script.objects.create(owner=user, title='S1', style='documentary', content='Stored narration.')


@pytest.fixture
def completed_video(user, script):
    return Video.objects.create(
        owner=user,
        script=script,
        status=Video.Status.COMPLETED,
        url='https://cdn.test/video/final.mp4',
        thumbnail_url='https://cdn.test/img/first.png',
    )
