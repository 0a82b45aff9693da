from rest_framework import serializers

from .models import ProcessingJob, Video
from .utils import guess_kind

RENDITION_FIELDS = ("video_versions", "thumbnails", "cdn_url", "video_url", "metadata")


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id",
            "title",
            "description",
            "submitter_id",
            "status",
            "stage",
            "progress",
            "error",
            "job_id",
            *RENDITION_FIELDS,
            "created_at",
            "updated_at",
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # renditions are only final once the pipeline completed
        if instance.status != Video.Status.COMPLETED:
            for name in RENDITION_FIELDS:
                data[name] = None
        return data


class ProcessingStatusSerializer(serializers.ModelSerializer):
    video_id = serializers.UUIDField(source="id")
    error = serializers.SerializerMethodField()
    job_id = serializers.SerializerMethodField()

    class Meta:
        model = Video
        fields = ["video_id", "status", "progress", "error", "job_id", "stage"]

    def get_error(self, obj):
        return obj.processing_state["error"]

    def get_job_id(self, obj):
        return obj.processing_state["job_id"]


class ProcessingJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProcessingJob
        fields = [
            "id",
            "video",
            "input_path",
            "submitter_id",
            "state",
            "attempts",
            "max_attempts",
            "last_error",
            "created_at",
            "updated_at",
        ]


class VideoUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    submitter_id = serializers.CharField(max_length=64)

    def validate_file(self, value):
        if guess_kind(value.name) != "video":
            raise serializers.ValidationError("Only video files can be uploaded.")
        return value
