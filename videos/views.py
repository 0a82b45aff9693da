import logging

from rest_framework import status, views
from rest_framework.generics import get_object_or_404
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .errors import InvalidJobError
from .models import ProcessingJob, Video
from .queue import enqueue_video_processing
from .serializers import (
    ProcessingJobSerializer,
    ProcessingStatusSerializer,
    VideoSerializer,
    VideoUploadSerializer,
)
from .utils import save_uploaded_file

logger = logging.getLogger(__name__)


class VideoUploadView(views.APIView):
    """
    Stores the raw upload in scratch storage, creates a pending Video and
    enqueues processing. Returns before any processing happens.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = VideoUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        input_path = save_uploaded_file(data["file"])
        video = Video.objects.create(
            title=data["title"],
            description=data.get("description", ""),
            submitter_id=data["submitter_id"],
            input_path=str(input_path),
        )
        try:
            job_id = enqueue_video_processing(video.pk, input_path, data["submitter_id"])
        except InvalidJobError as e:
            logger.error("Could not enqueue video %s: %s", video.pk, e)
            video.delete()
            input_path.unlink(missing_ok=True)
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {"video_id": str(video.pk), "job_id": job_id, "status": Video.Status.PENDING},
            status=status.HTTP_202_ACCEPTED,
        )


class VideoStatusView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        video = get_object_or_404(Video, pk=video_id)
        return Response(ProcessingStatusSerializer(video).data)


class VideoDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        video = get_object_or_404(Video, pk=video_id)
        return Response(VideoSerializer(video).data)


class FailedJobListView(views.APIView):
    """Jobs that exhausted their attempts, kept for operator inspection."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        jobs = ProcessingJob.objects.filter(state=ProcessingJob.State.FAILED)
        return Response(ProcessingJobSerializer(jobs, many=True).data)
