"""Tests for image uploaders."""

import re

import pytest
import requests

from shopfront.errors import ImageUploadError
from shopfront.settings import Settings
from shopfront.uploads import (
    IMAGEKIT_UPLOAD_URL,
    ImageKitUploader,
    LocalImageUploader,
    item_file_name,
    open_image_uploader,
)


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_item_file_name_sanitizes():
    name = item_file_name("../my photo?.png")
    assert re.fullmatch(r"item-\d+-my_photo_\.png", name)


class TestLocalImageUploader:
    def test_upload_and_resolve(self, temp_dir):
        uploader = LocalImageUploader(temp_dir / "images")
        url = uploader.upload(b"\x89PNG", "lamp.png")

        assert url.startswith("/images/")
        name = url.rsplit("/", 1)[1]
        assert uploader.resolve(name).read_bytes() == b"\x89PNG"

    def test_empty_file(self, temp_dir):
        with pytest.raises(ImageUploadError):
            LocalImageUploader(temp_dir).upload(b"", "lamp.png")

    def test_resolve_rejects_traversal(self, temp_dir):
        uploader = LocalImageUploader(temp_dir / "images")
        (temp_dir / "secret.txt").write_text("x")

        assert uploader.resolve("../secret.txt") is None
        assert uploader.resolve(".hidden") is None
        assert uploader.resolve("missing.png") is None


class TestImageKitUploader:
    def test_upload(self):
        session = FakeSession(FakeResponse(200, {"url": "https://ik.imagekit.io/x/items/lamp.png"}))
        uploader = ImageKitUploader("private_key", "https://ik.imagekit.io/x", session=session)

        assert uploader.upload(b"data", "lamp.png") == "https://ik.imagekit.io/x/items/lamp.png"
        url, kwargs = session.calls[0]
        assert url == IMAGEKIT_UPLOAD_URL
        assert kwargs["auth"] == ("private_key", "")
        assert kwargs["data"]["folder"] == "/items"
        assert kwargs["timeout"] == 10.0

    def test_error_status(self):
        session = FakeSession(FakeResponse(403, {"message": "Your account cannot be authenticated."}))
        uploader = ImageKitUploader("bad", "https://ik.imagekit.io/x", session=session)

        with pytest.raises(ImageUploadError, match="403"):
            uploader.upload(b"data", "lamp.png")

    def test_network_error(self):
        session = FakeSession(error=requests.ConnectionError("refused"))
        uploader = ImageKitUploader("k", "https://ik.imagekit.io/x", session=session)

        with pytest.raises(ImageUploadError, match="refused"):
            uploader.upload(b"data", "lamp.png")

    def test_missing_url_in_response(self):
        session = FakeSession(FakeResponse(200, {}))
        uploader = ImageKitUploader("k", "https://ik.imagekit.io/x", session=session)

        with pytest.raises(ImageUploadError):
            uploader.upload(b"data", "lamp.png")


class TestOpenImageUploader:
    def test_local_by_default(self, temp_dir):
        uploader = open_image_uploader(Settings(data_dir=temp_dir, imagekit_private_key=None))
        assert isinstance(uploader, LocalImageUploader)
        assert uploader.images_dir == temp_dir / "images"

    def test_imagekit_when_configured(self, temp_dir):
        settings = Settings(
            data_dir=temp_dir,
            imagekit_public_key="pub",
            imagekit_private_key="priv",
            imagekit_url_endpoint="https://ik.imagekit.io/x",
        )
        assert isinstance(open_image_uploader(settings), ImageKitUploader)
