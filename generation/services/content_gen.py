import logging
from dataclasses import dataclass

import httpx
from django.conf import settings

from ..models import TTSProvider, VideoMode

logger = logging.getLogger(__name__)

AUDIO_ENDPOINTS = {
    TTSProvider.OPENAI: '/audio/openai',
    TTSProvider.GOOGLE_TTS: '/audio/google-tts',
}


class GenerationBackendError(Exception):
    def __init__(self, operation, message, status_code=None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class ImagePrompt:
    prompt: str
    script: str = ''


@dataclass(frozen=True)
class GeneratedAudio:
    url: str
    duration: float = None


class ContentGenClient:
    """Request/response client for the generation backend.

    Holds no state besides the HTTP connection pool. Failures surface as
    ``GenerationBackendError``; nothing is retried here.
    """

    def __init__(self, base_url=None, dummy=None, http_client=None):
        self.base_url = (base_url or settings.GENERATION_BACKEND_URL).rstrip('/')
        self.dummy = settings.GENERATION_BACKEND_DUMMY if dummy is None else dummy
        self._client = http_client or httpx.Client(timeout=settings.GENERATION_BACKEND_TIMEOUT)

    def _url(self, path):
        suffix = '/dummy' if self.dummy else ''
        return f"{self.base_url}{path}{suffix}"

    def _post(self, operation, path, body):
        url = self._url(path)
        logger.debug("POST %s (%s)", url, operation)
        try:
            res = self._client.post(url, json=body, headers={"accept": "application/json"})
            res.raise_for_status()
            return res.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text if e.response is not None else str(e)
            raise GenerationBackendError(operation, detail, e.response.status_code) from e
        except httpx.RequestError as e:
            raise GenerationBackendError(operation, f"backend unreachable: {e}") from e
        except ValueError as e:
            raise GenerationBackendError(operation, f"invalid JSON response: {e}") from e

    @staticmethod
    def _require(operation, data, key):
        value = data.get(key) if isinstance(data, dict) else None
        if not value:
            raise GenerationBackendError(operation, f"response is missing '{key}'")
        return value

    def generate_script(self, title, style, language=None):
        body = {"title": title, "style": style}
        if language:
            body["language"] = language
        data = self._post("generate_script", "/scripts", body)
        return self._require("generate_script", data, "content")

    def generate_image(self, prompt):
        data = self._post("generate_image", "/images", {"prompt": prompt})
        return self._require("generate_image", data, "image_url")

    def generate_image_prompts(self, content, style):
        data = self._post("generate_image_prompts", "/image-prompts", {"content": content, "style": style})
        items = self._require("generate_image_prompts", data, "prompts")
        prompts = []
        for item in items:
            if isinstance(item, str):
                prompts.append(ImagePrompt(prompt=item))
            elif isinstance(item, dict) and item.get("prompt"):
                prompts.append(ImagePrompt(prompt=item["prompt"], script=item.get("script") or ''))
            else:
                raise GenerationBackendError("generate_image_prompts", f"malformed prompt entry: {item!r}")
        return prompts

    def generate_audio(self, script_text, provider=TTSProvider.OPENAI):
        try:
            path = AUDIO_ENDPOINTS[TTSProvider(provider)]
        except ValueError:
            raise GenerationBackendError("generate_audio", f"unknown TTS provider {provider!r}")
        data = self._post("generate_audio", path, {"script": script_text})
        url = self._require("generate_audio", data, "audio_url")
        duration = data.get("audio_duration")
        return GeneratedAudio(url=url, duration=float(duration) if duration is not None else None)

    def generate_video(self, image_urls, scripts, audio_url, mode=VideoMode.SIMPLE, transition_duration=None):
        try:
            mode = VideoMode(mode)
        except ValueError:
            raise GenerationBackendError("generate_video", f"unknown video mode {mode!r}")
        body = {
            "image_urls": list(image_urls),
            "audio_url": audio_url,
            "scripts": list(scripts or []),
        }
        if transition_duration is not None:
            body["transition_duration"] = transition_duration
        data = self._post("generate_video", f"/videos/{mode.value}", body)
        return self._require("generate_video", data, "video_url")

    def preview_voice(self, voice_id=None):
        url = self._url("/voices/preview")
        try:
            res = self._client.get(url, params={"voice_id": voice_id} if voice_id else None)
            res.raise_for_status()
            data = res.json()
        except httpx.HTTPStatusError as e:
            raise GenerationBackendError("preview_voice", e.response.text, e.response.status_code) from e
        except (httpx.RequestError, ValueError) as e:
            raise GenerationBackendError("preview_voice", str(e)) from e
        return {"voice_id": data.get("voice_id") or voice_id, "url": self._require("preview_voice", data, "url")}
