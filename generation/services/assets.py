"""Create/read/update/soft-delete services for generated media assets.

Creation is always "call the generation backend, then persist". The two
halves are exposed separately (``synthesize``/``render`` and ``record``) so
the pipeline can run the remote half on worker threads while every database
write stays on the calling thread's connection.
"""
import logging
import math

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.utils import timezone

from mediaforge.errors import InvalidInputError, NotFoundError, PersistenceError, UpstreamGenerationError
from ..models import Audio, Image, Script, TTSProvider, Video, VideoMode
from .content_gen import ContentGenClient, GenerationBackendError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class AssetService:
    model = None
    label = 'asset'
    updatable_fields = ()

    def __init__(self, content_gen=None):
        self.content_gen = content_gen or ContentGenClient()

    def queryset(self):
        return self.model.objects.alive()

    def find_all(self, page=1, limit=10, owner=None):
        page = max(1, int(page))
        limit = min(MAX_PAGE_SIZE, max(1, int(limit)))
        qs = self.queryset()
        if owner is not None:
            qs = qs.filter(owner=owner)
        total_count = qs.count()
        offset = (page - 1) * limit
        return {
            'total_count': total_count,
            'page': page,
            'limit': limit,
            'total_pages': math.ceil(total_count / limit),
            'items': list(qs.order_by('-created_at')[offset:offset + limit]),
        }

    def find_one(self, asset_id, owner=None):
        qs = self.queryset()
        if owner is not None:
            qs = qs.filter(owner=owner)
        try:
            return qs.get(pk=asset_id)
        except (self.model.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"{self.label.capitalize()} with ID {asset_id} not found.", entity_id=asset_id)

    def update(self, asset_id, owner=None, **changes):
        unknown = set(changes) - set(self.updatable_fields)
        if unknown:
            raise InvalidInputError(f"Cannot update {', '.join(sorted(unknown))} on {self.label}.")
        asset = self.find_one(asset_id, owner=owner)
        for field, value in changes.items():
            setattr(asset, field, value)
        asset.save(update_fields=[*changes, 'updated_at'])
        logger.info("Updated %s %s (%s)", self.label, asset.pk, ', '.join(sorted(changes)))
        return asset

    def soft_delete(self, asset_id, owner=None):
        asset = self.find_one(asset_id, owner=owner)
        asset.deleted_at = timezone.now()
        asset.save(update_fields=['deleted_at', 'updated_at'])
        logger.info("Soft-deleted %s %s", self.label, asset.pk)
        return asset

    def _call_backend(self, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GenerationBackendError as e:
            logger.warning("Generation backend failed for %s: %s", self.label, e)
            raise UpstreamGenerationError(self.label, f"Failed to generate {self.label}: {e.message}")

    def _persist(self, artifact_url, **fields):
        try:
            return self.model.objects.create(**fields)
        except DatabaseError as e:
            logger.error("Generated %s at %s could not be saved: %s", self.label, artifact_url, e)
            raise PersistenceError(f"Failed to save generated {self.label}.", artifact_url=artifact_url)


class ScriptService(AssetService):
    model = Script
    label = 'script'
    updatable_fields = ('title', 'style', 'language', 'content')

    def create(self, title, style, owner, language=None):
        if not title or not style:
            raise InvalidInputError('Title and style are required.')
        content = self._call_backend(self.content_gen.generate_script, title, style, language)
        script = self._persist(None, owner=owner, title=title, style=style, language=language or '', content=content)
        logger.info("Created script %s for user %s", script.pk, owner.pk)
        return script

    def derive_image_prompts(self, content, style):
        if not content or not style:
            raise InvalidInputError('Content and style are required.')
        try:
            return self.content_gen.generate_image_prompts(content, style)
        except GenerationBackendError as e:
            raise UpstreamGenerationError('image_prompts', f"Failed to generate image prompts: {e.message}")


class AudioService(AssetService):
    model = Audio
    label = 'audio'
    updatable_fields = ('provider', 'voice_params', 'url', 'duration_seconds')

    def __init__(self, content_gen=None, scripts=None):
        super().__init__(content_gen)
        self.scripts = scripts or ScriptService(self.content_gen)

    def synthesize(self, content, provider=TTSProvider.OPENAI):
        return self._call_backend(self.content_gen.generate_audio, content, provider)

    def record(self, script, owner, provider, generated):
        return self._persist(
            generated.url,
            owner=owner,
            script=script,
            provider=provider,
            voice_params={},
            url=generated.url,
            duration_seconds=generated.duration,
        )

    def create(self, script_id, owner, provider=None):
        if not script_id:
            raise InvalidInputError('Script is required.')
        provider = provider or TTSProvider.OPENAI
        script = self.scripts.find_one(script_id, owner=owner)
        audio = self.record(script, owner, provider, self.synthesize(script.content, provider))
        logger.info("Created audio %s for script %s", audio.pk, script.pk)
        return audio


class ImageService(AssetService):
    model = Image
    label = 'image'
    updatable_fields = ('prompt', 'style', 'url')

    def render(self, prompt):
        return self._call_backend(self.content_gen.generate_image, prompt)

    def record(self, prompt, style, owner, url):
        return self._persist(url, owner=owner, prompt=prompt, style=style, url=url)

    def create(self, prompt, style, owner):
        if not prompt or not style:
            raise InvalidInputError('Prompt and style are required.')
        return self.record(prompt, style, owner, self.render(prompt))


class VideoService(AssetService):
    model = Video
    label = 'video'
    updatable_fields = ('status', 'url', 'thumbnail_url')

    def __init__(self, content_gen=None, scripts=None):
        super().__init__(content_gen)
        self.scripts = scripts or ScriptService(self.content_gen)

    def create(self, image_urls, audio_url, script_id, owner, scripts=None,
               transition_duration=None, mode=VideoMode.SIMPLE):
        if not image_urls or not audio_url or not script_id:
            raise InvalidInputError('Image URLs and audio URL are required.')
        script = self.scripts.find_one(script_id, owner=owner)
        narration = list(scripts or [])
        logger.info("Creating video for user %s from script %s (%d images)", owner.pk, script.pk, len(image_urls))
        url = self._call_backend(
            self.content_gen.generate_video,
            image_urls, narration, audio_url, mode=mode, transition_duration=transition_duration,
        )
        return self._persist(
            url,
            owner=owner,
            script=script,
            status=Video.Status.COMPLETED,
            url=url,
            thumbnail_url=image_urls[0],
            mode=mode,
            transition_duration=transition_duration,
            narration=narration,
        )

    def find_by_script(self, script_id, owner=None):
        qs = self.queryset()
        if owner is not None:
            qs = qs.filter(owner=owner)
        try:
            video = qs.filter(script_id=script_id).first() if script_id else None
        except (ValidationError, ValueError):
            video = None
        if video is None:
            raise NotFoundError(f"Video with Script ID {script_id} not found.", entity_id=script_id)
        return video
