from urllib.parse import urlencode

from django.urls import reverse
from rest_framework import serializers


class ConvertUploadSerializer(serializers.Serializer):
    """
    Shape of a convert request: one media file under `video` (or `file`) and
    an optional declared original name. Kind and size are checked later by the
    intake validator.
    """
    video = serializers.FileField(required=False)
    file = serializers.FileField(required=False)
    originalName = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):
        upload = attrs.get("video") or attrs.get("file")
        if upload is None:
            raise serializers.ValidationError("No file uploaded")
        attrs["upload"] = upload
        return attrs


class ConvertResultSerializer(serializers.Serializer):
    success = serializers.SerializerMethodField()
    message = serializers.SerializerMethodField()
    downloadToken = serializers.CharField(source="id")
    downloadUrl = serializers.SerializerMethodField()
    filename = serializers.CharField(source="output_filename")
    originalName = serializers.CharField(source="original_name")
    size = serializers.IntegerField(source="declared_size")

    def get_success(self, job):
        return True

    def get_message(self, job):
        return "Conversion completed successfully"

    def get_downloadUrl(self, job):
        url = reverse("download", args=[job.id])
        return f"{url}?{urlencode({'original': job.original_name})}"


class ErrorSerializer(serializers.Serializer):
    success = serializers.BooleanField(default=False)
    error = serializers.CharField()
    message = serializers.CharField(required=False, allow_blank=True)
