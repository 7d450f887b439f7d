from rest_framework import serializers
from .models import PrivacyStatus, PublishingRecord


class PublishRequestSerializer(serializers.Serializer):
    video_id = serializers.UUIDField()
    platform = serializers.CharField(max_length=32)
    title = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    tags = serializers.ListField(child=serializers.CharField(max_length=100), required=False, default=list)
    privacy_status = serializers.ChoiceField(choices=PrivacyStatus.choices, default=PrivacyStatus.PRIVATE)


class PublishingRecordSerializer(serializers.ModelSerializer):
    platform_url = serializers.CharField(read_only=True, allow_null=True)

    class Meta:
        model = PublishingRecord
        fields = [
            'id', 'video', 'platform', 'platform_video_id', 'platform_url', 'status',
            'title', 'description', 'tags', 'privacy_status', 'channel_id',
            'error_message', 'response', 'published_at', 'created_at',
        ]
        read_only_fields = fields


class CallbackSerializer(serializers.Serializer):
    code = serializers.CharField()
    state = serializers.CharField()


class PublishingRecordUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=100), required=False)
    privacy_status = serializers.ChoiceField(choices=PrivacyStatus.choices, required=False)


class ChannelAnalyticsQuerySerializer(serializers.Serializer):
    start_date = serializers.CharField(required=False, default='30daysAgo')
    end_date = serializers.CharField(required=False, default='today')
    metrics = serializers.CharField(required=False, default='views,comments,likes,subscribersGained,subscribersLost')
    dimensions = serializers.ChoiceField(choices=['day', 'month'], required=False, default='day')
