from django.contrib import admin
from .models import Audio, GenerationJob, Image, Script, Video


@admin.register(GenerationJob)
class GenerationJobAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'script_ref', 'status', 'stage', 'progress', 'created_at')
    list_filter = ('status', 'stage', 'path', 'created_at')
    search_fields = ('id', 'script_ref', 'user__username')
    readonly_fields = ('retry_of', 'video')


@admin.register(Script)
class ScriptAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner', 'title', 'style', 'created_at', 'deleted_at')
    search_fields = ('title', 'id', 'owner__username')


@admin.register(Audio, Image)
class AssetAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner', 'url', 'created_at', 'deleted_at')
    list_filter = ('created_at',)


@admin.register(Video)
class VideoAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner', 'script', 'status', 'mode', 'created_at')
    list_filter = ('status', 'mode', 'created_at')
    search_fields = ('id', 'owner__username')
