from django.urls import path
from .views import FailedJobListView, VideoDetailView, VideoStatusView, VideoUploadView

urlpatterns = [
    path("videos/upload/", VideoUploadView.as_view(), name="video_upload"),
    path("videos/<uuid:video_id>/", VideoDetailView.as_view(), name="video_detail"),
    path("videos/<uuid:video_id>/status/", VideoStatusView.as_view(), name="video_status"),
    path("jobs/failed/", FailedJobListView.as_view(), name="jobs_failed"),
]
