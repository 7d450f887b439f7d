from django.contrib import admin
from .models import PublishingRecord


@admin.register(PublishingRecord)
class PublishingRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'video', 'platform', 'status', 'platform_video_id', 'created_at')
    list_filter = ('platform', 'status', 'created_at', 'deleted_at')
    search_fields = ('id', 'platform_video_id', 'title', 'user__username')
