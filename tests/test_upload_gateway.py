"""
S3 upload gateway tests, with botocore's Stubber in place of S3.
"""
import subprocess

import boto3
import pytest
from botocore.stub import Stubber

from src.utils import upload_gateway
from src.utils.upload_gateway import (
    PROBE_TIMEOUT_SECONDS,
    ProviderError,
    S3UploadGateway,
    UploadGatewayConfig,
    probe_duration,
)

BUCKET = "videotube-media"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def gateway(s3_client):
    return S3UploadGateway(UploadGatewayConfig(bucket=BUCKET, region="us-east-1"), client=s3_client)


@pytest.fixture
def local_video(tmp_path):
    path = tmp_path / "Clip.MP4"
    path.write_bytes(b"fake-video-bytes")
    return path


class TestConfig:

    def test_from_settings(self):
        class FakeSettings:
            AWS_S3_BUCKET = "bucket"
            AWS_ACCESS_KEY_ID = "key"
            AWS_SECRET_ACCESS_KEY = "secret"
            AWS_REGION = "eu-west-1"
            S3_PUBLIC_BASE_URL = None

        config = UploadGatewayConfig.from_settings(FakeSettings)
        assert config == UploadGatewayConfig(
            bucket="bucket",
            access_key_id="key",
            secret_access_key="secret",
            region="eu-west-1",
        )

    def test_bucket_is_required(self, s3_client):
        with pytest.raises(ValueError):
            S3UploadGateway(UploadGatewayConfig(bucket=None), client=s3_client)

    def test_object_url(self, gateway, s3_client):
        assert gateway.object_url("videos/a.mp4") == f"https://{BUCKET}.s3.us-east-1.amazonaws.com/videos/a.mp4"

        cdn = S3UploadGateway(
            UploadGatewayConfig(bucket=BUCKET, public_base_url="https://cdn.example.com/"),
            client=s3_client,
        )
        assert cdn.object_url("videos/a.mp4") == "https://cdn.example.com/videos/a.mp4"


class TestUpload:

    @pytest.mark.asyncio
    async def test_video_upload(self, gateway, stubber, local_video, monkeypatch):
        monkeypatch.setattr(upload_gateway, "probe_duration", lambda path: 61.2)
        stubber.add_response("put_object", {"ETag": '"abc"'})

        result = await gateway.upload(str(local_video), {"resource_type": "video"})

        assert result.key.startswith("videos/")
        assert result.key.endswith(".mp4")
        assert result.url == gateway.object_url(result.key)
        assert result.duration_seconds == 61.2
        assert result.bytes == len(b"fake-video-bytes")
        assert result.resource_type == "video"

    @pytest.mark.asyncio
    async def test_image_upload_skips_probe(self, gateway, stubber, tmp_path, monkeypatch):
        def fail_probe(path):
            raise AssertionError("images are not probed")

        monkeypatch.setattr(upload_gateway, "probe_duration", fail_probe)
        image = tmp_path / "thumb.jpg"
        image.write_bytes(b"jpg")
        stubber.add_response("put_object", {"ETag": '"def"'})

        result = await gateway.upload(str(image), {"resource_type": "image"})

        assert result.key.startswith("thumbnails/")
        assert result.duration_seconds is None

    @pytest.mark.asyncio
    async def test_s3_error_becomes_provider_error(self, gateway, stubber, local_video, monkeypatch):
        monkeypatch.setattr(upload_gateway, "probe_duration", lambda path: 1.0)
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(ProviderError):
            await gateway.upload(str(local_video))

    @pytest.mark.asyncio
    async def test_put_object_arguments(self, local_video, monkeypatch):
        class RecordingClient:
            def __init__(self):
                self.calls = []

            def put_object(self, **kwargs):
                kwargs["Body"] = kwargs["Body"].read()
                self.calls.append(kwargs)
                return {"ETag": '"abc"'}

        monkeypatch.setattr(upload_gateway, "probe_duration", lambda path: 3.0)
        client = RecordingClient()
        gateway = S3UploadGateway(UploadGatewayConfig(bucket=BUCKET), client=client)

        result = await gateway.upload(str(local_video))

        assert client.calls == [{
            "Bucket": BUCKET,
            "Key": result.key,
            "Body": b"fake-video-bytes",
            "ContentType": "video/mp4",
        }]

    @pytest.mark.asyncio
    async def test_missing_file_becomes_provider_error(self, gateway, tmp_path):
        with pytest.raises(ProviderError):
            await gateway.upload(str(tmp_path / "gone.jpg"), {"resource_type": "image"})


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete(self, gateway, stubber):
        stubber.add_response("delete_object", {})
        await gateway.delete("videos/abc.mp4")

    @pytest.mark.asyncio
    async def test_s3_error_becomes_provider_error(self, gateway, stubber):
        stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.delete("videos/abc.mp4")
        assert "videos/abc.mp4" in str(exc_info.value)


class TestProbeDuration:

    def test_parses_ffprobe_output(self, monkeypatch):
        def fake_run(command, **kwargs):
            assert command[0] == "ffprobe"
            assert kwargs["timeout"] == PROBE_TIMEOUT_SECONDS
            return subprocess.CompletedProcess(command, 0, stdout=b"12.3456\n", stderr=b"")

        monkeypatch.setattr(upload_gateway.subprocess, "run", fake_run)
        assert probe_duration("clip.mp4") == 12.346

    def test_ffprobe_missing(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise FileNotFoundError("ffprobe")

        monkeypatch.setattr(upload_gateway.subprocess, "run", fake_run)
        with pytest.raises(ProviderError):
            probe_duration("clip.mp4")

    def test_ffprobe_failure(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise subprocess.CalledProcessError(1, command, stderr=b"Invalid data found")

        monkeypatch.setattr(upload_gateway.subprocess, "run", fake_run)
        with pytest.raises(ProviderError) as exc_info:
            probe_duration("clip.mp4")
        assert "Invalid data found" in str(exc_info.value)

    def test_ffprobe_without_duration(self, monkeypatch):
        def fake_run(command, **kwargs):
            return subprocess.CompletedProcess(command, 0, stdout=b"N/A\n", stderr=b"")

        monkeypatch.setattr(upload_gateway.subprocess, "run", fake_run)
        with pytest.raises(ProviderError):
            probe_duration("clip.mp4")

    def test_hung_ffprobe_is_stopped(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr(upload_gateway.subprocess, "run", fake_run)
        with pytest.raises(ProviderError) as exc_info:
            probe_duration("clip.mp4", timeout=2)
        assert "timed out after 2s" in str(exc_info.value)
