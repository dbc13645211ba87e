"""
Tests for the Cloudinary image host client.
"""

import hashlib
from urllib.parse import parse_qs

import httpx
import pytest

from api.images import CloudinaryImageHost, ImageHostError, public_id_from_url, sign_params


@pytest.mark.parametrize("url, expected", [
    ("https://res.cloudinary.com/demo/image/upload/v1712/abc123.png", "abc123"),
    ("https://res.cloudinary.com/demo/image/upload/abc123", "abc123"),
    ("https://res.cloudinary.com/demo/image/upload/v1/abc123.jpg?x=1", "abc123"),
    ("abc123.webp", "abc123"),
])
def test_public_id_from_url(url, expected):
    assert public_id_from_url(url) == expected


def test_sign_params_sorts_keys():
    expected = hashlib.sha1(b"public_id=abc&timestamp=100shhh").hexdigest()
    assert sign_params({"timestamp": "100", "public_id": "abc"}, "shhh") == expected


def make_host(api_config, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CloudinaryImageHost(api_config, client=client)


def test_is_hosted(api_config):
    host = CloudinaryImageHost(api_config, client=httpx.AsyncClient())

    assert host.is_hosted("https://res.cloudinary.com/demo/image/upload/v1/a.jpg")
    assert not host.is_hosted("https://images.example.com/a.jpg")
    assert not host.is_hosted(None)
    assert not host.is_hosted("")


class TestUpload:

    @pytest.mark.asyncio
    async def test_signed_upload_returns_secure_url(self, api_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "public_id": "abc123",
                "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/abc123.png",
            })

        host = make_host(api_config, handler)
        url = await host.upload("data:image/png;base64,iVBORw0KGgo=")

        assert url == "https://res.cloudinary.com/demo/image/upload/v1/abc123.png"
        assert len(requests) == 1
        assert str(requests[0].url) == "https://api.cloudinary.com/v1_1/demo/image/upload"
        form = parse_qs(requests[0].content.decode())
        assert form["file"] == ["data:image/png;base64,iVBORw0KGgo="]
        assert form["api_key"] == ["123456"]
        assert form["signature"] == [sign_params({"timestamp": form["timestamp"][0]}, "shhh")]

    @pytest.mark.asyncio
    async def test_rejected_upload(self, api_config):
        host = make_host(api_config, lambda request: httpx.Response(400, json={"error": {"message": "bad"}}))

        with pytest.raises(ImageHostError):
            await host.upload("not-an-image")

    @pytest.mark.asyncio
    async def test_response_without_url(self, api_config):
        host = make_host(api_config, lambda request: httpx.Response(200, json={}))

        with pytest.raises(ImageHostError):
            await host.upload("data:image/png;base64,iVBORw0KGgo=")


class TestDestroy:

    @pytest.mark.asyncio
    async def test_destroy_posts_public_id(self, api_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"result": "ok"})

        host = make_host(api_config, handler)
        await host.destroy("abc123")

        assert str(requests[0].url) == "https://api.cloudinary.com/v1_1/demo/image/destroy"
        form = parse_qs(requests[0].content.decode())
        assert form["public_id"] == ["abc123"]
        assert form["signature"] == [
            sign_params({"public_id": "abc123", "timestamp": form["timestamp"][0]}, "shhh")
        ]

    @pytest.mark.asyncio
    async def test_not_found_is_error(self, api_config):
        host = make_host(api_config, lambda request: httpx.Response(200, json={"result": "not found"}))

        with pytest.raises(ImageHostError):
            await host.destroy("missing")

    @pytest.mark.asyncio
    async def test_transport_error(self, api_config):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        host = make_host(api_config, handler)

        with pytest.raises(ImageHostError):
            await host.destroy("abc123")
