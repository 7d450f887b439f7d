from django.conf import settings
from django.db import models
from django.utils import timezone
import uuid


class TTSProvider(models.TextChoices):
    OPENAI = 'OPENAI', 'OpenAI'
    GOOGLE_TTS = 'GOOGLE_TTS', 'Google TTS'


class VideoMode(models.TextChoices):
    SIMPLE = 'simple', 'simple'
    FULL = 'full', 'full'


class AssetQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)


class MediaAsset(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = AssetQuerySet.as_manager()

    class Meta:
        abstract = True
        ordering = ['-created_at']

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class Script(MediaAsset):
    title = models.CharField(max_length=500)
    style = models.CharField(max_length=255)
    language = models.CharField(max_length=32, blank=True, default='')
    content = models.TextField()

    class Meta(MediaAsset.Meta):
        indexes = [models.Index(fields=['owner', 'created_at'], name='script_owner_created_idx')]

    def __str__(self):
        return self.title


class Audio(MediaAsset):
    script = models.ForeignKey(Script, on_delete=models.PROTECT, related_name='audios')
    provider = models.CharField(max_length=32, choices=TTSProvider.choices, default=TTSProvider.OPENAI)
    voice_params = models.JSONField(default=dict, blank=True)
    url = models.URLField(max_length=2048)
    duration_seconds = models.FloatField(blank=True, null=True)

    class Meta(MediaAsset.Meta):
        indexes = [models.Index(fields=['owner', 'created_at'], name='audio_owner_created_idx')]


class Image(MediaAsset):
    prompt = models.TextField()
    style = models.CharField(max_length=255)
    url = models.URLField(max_length=2048)

    class Meta(MediaAsset.Meta):
        indexes = [models.Index(fields=['owner', 'created_at'], name='image_owner_created_idx')]


class Video(MediaAsset):
    class Status(models.TextChoices):
        PENDING = 'pending', 'pending'
        COMPLETED = 'completed', 'completed'
        PUBLISHING = 'publishing', 'publishing'
        PUBLISHED = 'published', 'published'
        FAILED = 'failed', 'failed'

    script = models.ForeignKey(Script, on_delete=models.PROTECT, related_name='videos')
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING)
    url = models.URLField(max_length=2048, blank=True)
    thumbnail_url = models.URLField(max_length=2048, blank=True)
    mode = models.CharField(max_length=16, choices=VideoMode.choices, default=VideoMode.SIMPLE)
    transition_duration = models.FloatField(blank=True, null=True)
    narration = models.JSONField(default=list, blank=True)

    class Meta(MediaAsset.Meta):
        indexes = [
            models.Index(fields=['owner', 'created_at'], name='video_owner_created_idx'),
            models.Index(fields=['status'], name='video_status_idx'),
        ]


class GenerationJob(models.Model):
    class Status(models.TextChoices):
        QUEUED = 'queued', 'queued'
        RUNNING = 'running', 'running'
        COMPLETED = 'completed', 'completed'
        FAILED = 'failed', 'failed'

    class Stage(models.TextChoices):
        PENDING = 'pending', 'pending'
        VALIDATING = 'validating', 'validating'
        REUSING_PROVIDED = 'reusing_provided', 'reusing_provided'
        GENERATING = 'generating', 'generating'
        ASSEMBLING = 'assembling', 'assembling'
        COMPLETED = 'completed', 'completed'
        FAILED = 'failed', 'failed'

    class Path(models.TextChoices):
        REUSE = 'reuse', 'reuse'
        SCRATCH = 'scratch', 'scratch'

    ACTIVE_STATUSES = (Status.QUEUED, Status.RUNNING)
    TERMINAL_STATUSES = (Status.COMPLETED, Status.FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='generation_jobs')
    script_ref = models.CharField(max_length=64)
    provided_scripts = models.JSONField(default=list, blank=True)
    provided_image_urls = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.QUEUED)
    stage = models.CharField(max_length=32, choices=Stage.choices, default=Stage.PENDING)
    path = models.CharField(max_length=16, choices=Path.choices, blank=True)
    progress = models.PositiveSmallIntegerField(default=0)
    video = models.ForeignKey(Video, on_delete=models.SET_NULL, blank=True, null=True, related_name='+')
    error_stage = models.CharField(max_length=32, blank=True)
    error_code = models.CharField(max_length=64, blank=True)
    error_message = models.TextField(blank=True)
    celery_task_id = models.CharField(max_length=255, blank=True)
    attempts = models.PositiveSmallIntegerField(default=0)
    retry_of = models.ForeignKey('self', on_delete=models.SET_NULL, blank=True, null=True, related_name='retries')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    started_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    processing_time_seconds = models.IntegerField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', 'created_at'], name='job_user_created_idx'),
            models.Index(fields=['status'], name='job_status_idx'),
        ]
        ordering = ['-created_at']

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def elapsed_seconds(self):
        start = self.started_at or self.created_at
        return int((timezone.now() - start).total_seconds())
