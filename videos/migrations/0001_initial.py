import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Video",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("submitter_id", models.CharField(max_length=64)),
                ("input_path", models.CharField(max_length=1024)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")], default="pending", max_length=16)),
                ("stage", models.CharField(choices=[("queued", "Queued"), ("probing", "Probing"), ("generating_thumbnails", "Generating Thumbnails"), ("transcoding", "Transcoding"), ("uploading", "Uploading"), ("finalizing", "Finalizing"), ("completed", "Completed"), ("failed", "Failed")], default="queued", max_length=32)),
                ("progress", models.PositiveSmallIntegerField(default=0)),
                ("error", models.TextField(blank=True, default="")),
                ("job_id", models.CharField(blank=True, default="", max_length=64)),
                ("video_versions", models.JSONField(blank=True, default=dict)),
                ("thumbnails", models.JSONField(blank=True, default=list)),
                ("cdn_url", models.URLField(blank=True, default="", max_length=1024)),
                ("video_url", models.URLField(blank=True, default="", max_length=1024)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status"], name="videos_video_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="ProcessingJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("input_path", models.CharField(max_length=1024)),
                ("submitter_id", models.CharField(max_length=64)),
                ("state", models.CharField(choices=[("queued", "Queued"), ("active", "Active"), ("retrying", "Retrying"), ("failed", "Failed")], default="queued", max_length=16)),
                ("attempts", models.PositiveSmallIntegerField(default=0)),
                ("max_attempts", models.PositiveSmallIntegerField(default=3)),
                ("last_error", models.TextField(blank=True, default="")),
                ("claimed_by", models.CharField(blank=True, default="", max_length=255)),
                ("lease_expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("video", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="jobs", to="videos.video")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["state", "updated_at"], name="videos_job_state_idx")],
            },
        ),
    ]
