from django.contrib import admin

from .models import ProcessingJob, Video


@admin.register(Video)
class VideoAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "status", "stage", "progress", "job_id", "created_at")
    list_filter = ("status", "stage")
    search_fields = ("id", "title", "submitter_id", "job_id")
    readonly_fields = ("video_versions", "thumbnails", "cdn_url", "video_url", "metadata", "error")


@admin.register(ProcessingJob)
class ProcessingJobAdmin(admin.ModelAdmin):
    list_display = ("id", "video", "state", "attempts", "max_attempts", "claimed_by", "updated_at")
    list_filter = ("state",)
    search_fields = ("id", "video__id", "submitter_id")
    readonly_fields = ("last_error", "lease_expires_at")
