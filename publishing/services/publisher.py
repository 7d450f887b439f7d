import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass, field

import httpx
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone
from googleapiclient.errors import Error as GoogleApiError
from googleapiclient.http import MediaFileUpload

from generation.models import Video
from mediaforge.errors import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PublishError,
    UnsupportedPlatformError,
)
from ..models import Platform, PrivacyStatus, PublishingRecord
from .youtube_auth import YouTubeAuthManager

logger = logging.getLogger(__name__)

YOUTUBE_CATEGORY_PEOPLE_AND_BLOGS = '22'
MAX_PAGE_SIZE = 100


class UploadError(Exception):
    def __init__(self, message, response=None):
        super().__init__(message)
        self.response = response or {}


@dataclass(frozen=True)
class UploadResult:
    video_id: str
    response: dict = field(default_factory=dict)


def _error_payload(error):
    content = getattr(error, 'content', None)
    if not content:
        return {'error': str(error)}
    if isinstance(content, bytes):
        content = content.decode('utf-8', 'replace')
    try:
        payload = json.loads(content)
    except ValueError:
        return {'error': content}
    return payload if isinstance(payload, dict) else {'error': payload}


@dataclass(frozen=True)
class PublishRequest:
    title: str
    description: str = ''
    tags: list = field(default_factory=list)
    privacy_status: str = PrivacyStatus.PRIVATE


def _download_to_temp(url: str) -> str:
    fd, path = tempfile.mkstemp(suffix='.mp4')
    os.close(fd)
    try:
        with httpx.stream('GET', url, timeout=120, follow_redirects=True) as r:
            r.raise_for_status()
            with open(path, 'wb') as f:
                for chunk in r.iter_bytes():
                    f.write(chunk)
    except Exception:
        os.remove(path)
        raise
    return path


class YouTubeUploader:
    def __init__(self, auth=None):
        self.auth = auth or YouTubeAuthManager()

    def authorize(self, user_id):
        return self.auth.get_client_for_user(user_id)

    def upload(self, client, video_url, request):
        try:
            path = _download_to_temp(video_url)
        except httpx.HTTPError as e:
            raise UploadError(f"could not download video: {e}") from e
        try:
            body = {
                'snippet': {
                    'title': request.title,
                    'description': request.description,
                    'tags': list(request.tags),
                    'categoryId': YOUTUBE_CATEGORY_PEOPLE_AND_BLOGS,
                },
                'status': {'privacyStatus': request.privacy_status},
            }
            media = MediaFileUpload(path, mimetype='video/mp4', chunksize=-1, resumable=True)
            response = client.youtube.videos().insert(part='snippet,status', body=body, media_body=media).execute()
        except GoogleApiError as e:
            raise UploadError(f"YouTube rejected the upload: {e}", response=_error_payload(e)) from e
        finally:
            os.remove(path)
        response = response or {}
        video_id = response.get('id')
        if not video_id:
            raise UploadError('YouTube did not return a video id.', response=response)
        return UploadResult(video_id=video_id, response=response)


UPLOADERS = {
    Platform.YOUTUBE: YouTubeUploader,
}


def parse_platform(value):
    try:
        return Platform(str(value).upper())
    except ValueError:
        raise UnsupportedPlatformError(f"Unknown platform '{value}'.", platform=value)


class PlatformPublisher:
    """Uploads a completed video and records the outcome.

    The video is flipped to ``publishing`` before the upload and only
    becomes ``published`` in the same transaction that stores the success
    record. Any failure after the flip restores ``completed``.
    """

    def __init__(self, uploaders=None):
        self.uploaders = uploaders if uploaders is not None else UPLOADERS

    def _uploader(self, platform):
        factory = self.uploaders.get(platform)
        if factory is None:
            raise UnsupportedPlatformError(f"Publishing to {platform.label} is not supported.", platform=platform.value)
        return factory() if isinstance(factory, type) else factory

    def publish(self, video_id, platform, title, description='', tags=None, user=None,
                privacy_status=PrivacyStatus.PRIVATE):
        platform = parse_platform(platform)
        uploader = self._uploader(platform)
        if not title:
            raise InvalidInputError('Title is required.')
        if privacy_status not in PrivacyStatus.values:
            raise InvalidInputError(f"Unknown privacy status '{privacy_status}'.")
        request = PublishRequest(title=title, description=description or '', tags=list(tags or []),
                                 privacy_status=privacy_status)

        video = self._load_video(video_id, user)
        if video.status != Video.Status.COMPLETED or not video.url:
            raise InvalidStateError(
                f"Video {video.pk} is '{video.status}' and cannot be published.", entity_id=video.pk,
            )
        client = uploader.authorize(video.owner_id)

        flipped = Video.objects.filter(pk=video.pk, status=Video.Status.COMPLETED).update(
            status=Video.Status.PUBLISHING, updated_at=timezone.now(),
        )
        if not flipped:
            raise InvalidStateError(f"Video {video.pk} is already being published.", entity_id=video.pk)

        try:
            result = uploader.upload(client, video.url, request)
            with transaction.atomic():
                record = PublishingRecord.objects.create(
                    user_id=video.owner_id,
                    video=video,
                    platform=platform,
                    platform_video_id=result.video_id,
                    status=PublishingRecord.Status.SUCCESS,
                    title=request.title,
                    description=request.description,
                    tags=request.tags,
                    privacy_status=request.privacy_status,
                    channel_id=getattr(client, 'channel_id', '') or '',
                    response=result.response,
                    published_at=timezone.now(),
                )
                Video.objects.filter(pk=video.pk).update(status=Video.Status.PUBLISHED, updated_at=timezone.now())
        except Exception as e:
            self._roll_back(video, platform, request, e)
            raise PublishError(
                f"Failed to publish video to {platform.label}: {e}", entity_id=video.pk, platform=platform.value,
            ) from e
        logger.info("Published video %s to %s as %s", video.pk, platform.value, result.video_id)
        return record

    def _load_video(self, video_id, user):
        qs = Video.objects.alive()
        if user is not None:
            qs = qs.filter(owner=user)
        try:
            return qs.get(pk=video_id)
        except (Video.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Video with ID {video_id} not found.", entity_id=video_id)

    def _roll_back(self, video, platform, request, error):
        Video.objects.filter(pk=video.pk, status=Video.Status.PUBLISHING).update(
            status=Video.Status.COMPLETED, updated_at=timezone.now(),
        )
        logger.warning("Rolled video %s back to completed after failed %s upload: %s", video.pk, platform.value, error)
        PublishingRecord.objects.create(
            user_id=video.owner_id,
            video=video,
            platform=platform,
            status=PublishingRecord.Status.FAILURE,
            title=request.title,
            description=request.description,
            tags=request.tags,
            privacy_status=request.privacy_status,
            error_message=str(error),
            response=error.response if isinstance(error, UploadError) else {},
        )


class PublishingHistoryService:
    """Read and edit the local publishing log.

    Edits only touch the stored record; the video on the platform is left as is.
    """
    updatable_fields = ('title', 'description', 'tags', 'privacy_status')

    def find_all(self, user, page=1, limit=10):
        page = max(1, int(page))
        limit = min(MAX_PAGE_SIZE, max(1, int(limit)))
        qs = PublishingRecord.objects.alive().filter(user=user).select_related('video')
        total_count = qs.count()
        offset = (page - 1) * limit
        return {
            'total_count': total_count,
            'page': page,
            'limit': limit,
            'total_pages': math.ceil(total_count / limit),
            'items': list(qs[offset:offset + limit]),
        }

    def find_one(self, record_id, user):
        try:
            return PublishingRecord.objects.alive().select_related('video').get(pk=record_id, user=user)
        except (PublishingRecord.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Publishing record with ID {record_id} not found.", entity_id=record_id)

    def update(self, record_id, user, **changes):
        unknown = set(changes) - set(self.updatable_fields)
        if unknown:
            raise InvalidInputError(f"Cannot update {', '.join(sorted(unknown))} on a publishing record.")
        if 'title' in changes and not changes['title']:
            raise InvalidInputError('Title cannot be empty.')
        if 'privacy_status' in changes and changes['privacy_status'] not in PrivacyStatus.values:
            raise InvalidInputError(f"Unknown privacy status '{changes['privacy_status']}'.")
        record = self.find_one(record_id, user)
        for name, value in changes.items():
            setattr(record, name, value)
        record.save(update_fields=[*changes, 'updated_at'])
        logger.info("Updated publishing record %s (%s)", record.pk, ', '.join(sorted(changes)))
        return record

    def remove(self, record_id, user):
        record = self.find_one(record_id, user)
        record.deleted_at = timezone.now()
        record.save(update_fields=['deleted_at', 'updated_at'])
        logger.info("Removed publishing record %s", record.pk)
        return record
