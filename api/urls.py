from django.urls import path
from .views import ConvertView, DownloadView, HealthView

urlpatterns = [
    path("convert", ConvertView.as_view(), name="convert"),
    path("download/<str:token>", DownloadView.as_view(), name="download"),
    path("health", HealthView.as_view(), name="health"),
]
