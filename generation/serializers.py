from rest_framework import serializers
from .models import Audio, GenerationJob, Image, Script, TTSProvider, Video, VideoMode


class ScriptSerializer(serializers.ModelSerializer):
    class Meta:
        model = Script
        fields = ['id', 'title', 'style', 'language', 'content', 'created_at', 'updated_at']
        read_only_fields = ['id', 'content', 'created_at', 'updated_at']


class ScriptCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=500)
    style = serializers.CharField(max_length=255)
    language = serializers.CharField(max_length=32, required=False, allow_blank=True)


class ScriptUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=500, required=False)
    style = serializers.CharField(max_length=255, required=False)
    language = serializers.CharField(max_length=32, required=False, allow_blank=True)
    content = serializers.CharField(required=False)


class AudioSerializer(serializers.ModelSerializer):
    class Meta:
        model = Audio
        fields = ['id', 'script', 'provider', 'voice_params', 'url', 'duration_seconds', 'created_at', 'updated_at']
        read_only_fields = fields


class AudioCreateSerializer(serializers.Serializer):
    script_id = serializers.UUIDField()
    provider = serializers.ChoiceField(choices=TTSProvider.choices, default=TTSProvider.OPENAI)


class ImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Image
        fields = ['id', 'prompt', 'style', 'url', 'created_at', 'updated_at']
        read_only_fields = fields


class ImageCreateSerializer(serializers.Serializer):
    prompt = serializers.CharField()
    style = serializers.CharField(max_length=255)


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            'id', 'script', 'status', 'url', 'thumbnail_url', 'mode',
            'transition_duration', 'narration', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class VideoCreateSerializer(serializers.Serializer):
    image_urls = serializers.ListField(child=serializers.URLField(max_length=2048), min_length=1)
    audio_url = serializers.URLField(max_length=2048)
    script_id = serializers.UUIDField()
    scripts = serializers.ListField(child=serializers.CharField(), required=False)
    transition_duration = serializers.FloatField(required=False, min_value=0)
    mode = serializers.ChoiceField(choices=VideoMode.choices, default=VideoMode.SIMPLE)


class GenerateVideoJobSerializer(serializers.Serializer):
    script_id = serializers.UUIDField()
    scripts = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False)
    image_urls = serializers.ListField(child=serializers.URLField(max_length=2048), required=False)


class GenerateImagesSerializer(serializers.Serializer):
    content = serializers.CharField()
    style = serializers.CharField(max_length=255)


class GenerationJobSerializer(serializers.ModelSerializer):
    progress_percent = serializers.IntegerField(source='progress', read_only=True)
    result = serializers.SerializerMethodField()
    error = serializers.SerializerMethodField()

    class Meta:
        model = GenerationJob
        fields = [
            'id', 'script_ref', 'status', 'stage', 'path', 'progress_percent',
            'result', 'error', 'attempts', 'retry_of', 'created_at', 'updated_at',
            'started_at', 'completed_at', 'processing_time_seconds',
        ]
        read_only_fields = fields

    def get_result(self, obj):
        if obj.video_id is None:
            return None
        return {'video_id': str(obj.video_id), 'video_url': obj.video.url if obj.video else None}

    def get_error(self, obj):
        if obj.status != GenerationJob.Status.FAILED:
            return None
        return {'stage': obj.error_stage, 'code': obj.error_code, 'message': obj.error_message}


def paginated(result, serializer_class):
    return {
        'total_count': result['total_count'],
        'page': result['page'],
        'limit': result['limit'],
        'total_pages': result['total_pages'],
        'items': serializer_class(result['items'], many=True).data,
    }
