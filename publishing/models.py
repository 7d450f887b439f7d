from django.conf import settings
from django.db import models
import uuid


class Platform(models.TextChoices):
    YOUTUBE = 'YOUTUBE', 'YouTube'
    TIKTOK = 'TIKTOK', 'TikTok'
    FACEBOOK = 'FACEBOOK', 'Facebook'


class PrivacyStatus(models.TextChoices):
    PRIVATE = 'private', 'private'
    PUBLIC = 'public', 'public'
    UNLISTED = 'unlisted', 'unlisted'


WATCH_URLS = {
    Platform.YOUTUBE: 'https://www.youtube.com/watch?v={id}',
    Platform.TIKTOK: 'https://www.tiktok.com/@user/video/{id}',
    Platform.FACEBOOK: 'https://www.facebook.com/watch/?v={id}',
}


class PublishingRecordQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)


class PublishingRecord(models.Model):
    class Status(models.TextChoices):
        SUCCESS = 'success', 'success'
        FAILURE = 'failure', 'failure'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='publishing_records')
    video = models.ForeignKey('generation.Video', on_delete=models.CASCADE, related_name='publishing_records')
    platform = models.CharField(max_length=16, choices=Platform.choices)
    platform_video_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices)
    title = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    privacy_status = models.CharField(max_length=16, choices=PrivacyStatus.choices, default=PrivacyStatus.PRIVATE)
    channel_id = models.CharField(max_length=255, blank=True)
    error_message = models.TextField(blank=True)
    response = models.JSONField(default=dict, blank=True)
    published_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = PublishingRecordQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=['user', 'created_at'], name='publish_user_created_idx'),
            models.Index(fields=['platform', 'platform_video_id'], name='publish_platform_video_idx'),
        ]
        ordering = ['-created_at']

    @property
    def platform_url(self):
        if self.status != self.Status.SUCCESS or not self.platform_video_id:
            return None
        template = WATCH_URLS.get(self.platform)
        return template.format(id=self.platform_video_id) if template else None
