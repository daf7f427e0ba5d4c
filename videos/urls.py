from django.urls import path
from .views import (
    CompleteUploadView,
    JobStatusView,
    TranscodeView,
    UploadUrlView,
    VideoDetailView,
    VideoListView,
)

urlpatterns = [
    path("videos/upload-url", UploadUrlView.as_view(), name="upload_url"),
    path("videos/complete-upload", CompleteUploadView.as_view(), name="complete_upload"),
    path("videos/", VideoListView.as_view(), name="video_list"),
    path("videos/<str:video_id>", VideoDetailView.as_view(), name="video_detail"),
    path("videos/<str:video_id>/transcode", TranscodeView.as_view(), name="video_transcode"),
    path("internal/job-status", JobStatusView.as_view(), name="job_status"),
]
