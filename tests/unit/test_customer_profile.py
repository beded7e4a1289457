"""Tests for the Klaviyo customer profile client."""

import json
from unittest.mock import patch

import httpx
import pytest

from src.core.exceptions import ConfigurationError, ProfileSyncError
from src.services.customer_profile import KlaviyoProfileClient, split_name


def make_client(handler, **kwargs) -> KlaviyoProfileClient:
    kwargs.setdefault("api_key", "pk_test")
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("base_delay", 0.0)
    return KlaviyoProfileClient(transport=httpx.MockTransport(handler), **kwargs)


def test_split_name():
    assert split_name("Ada Lovelace") == ("Ada", "Lovelace")
    assert split_name("  Ada  King Lovelace ") == ("Ada", "King Lovelace")
    assert split_name("Ada") == ("Ada", None)
    assert split_name("") == (None, None)
    assert split_name(None) == (None, None)


class TestKlaviyoProfileClient:
    """Tests for KlaviyoProfileClient."""

    def test_init_without_api_key_raises(self):
        with patch("src.services.customer_profile.settings") as mock_settings:
            mock_settings.klaviyo_api_key = None
            with pytest.raises(ConfigurationError, match="KLAVIYO_API_KEY"):
                KlaviyoProfileClient()

    def test_init_uses_settings_defaults(self):
        with patch("src.services.customer_profile.settings") as mock_settings:
            mock_settings.klaviyo_api_key = "settings-key"
            mock_settings.klaviyo_list_id = "L1"
            mock_settings.klaviyo_max_retries = 4
            mock_settings.klaviyo_timeout = 2.0

            client = KlaviyoProfileClient()

        assert client.api_key == "settings-key"
        assert client.list_id == "L1"
        assert client.max_retries == 4
        assert client.timeout == 2.0

    async def test_upsert_posts_profile(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": {"id": "P1"}})

        client = make_client(handler, list_id="")
        await client.upsert("ada@example.com", "Ada Lovelace", "s-1")

        assert len(requests) == 1
        request = requests[0]
        assert request.url.path == "/api/profile-import/"
        assert request.headers["Authorization"] == "Klaviyo-API-Key pk_test"
        assert request.headers["revision"]
        attributes = json.loads(request.content)["data"]["attributes"]
        assert attributes["email"] == "ada@example.com"
        assert attributes["first_name"] == "Ada"
        assert attributes["last_name"] == "Lovelace"
        assert attributes["properties"]["session_id"] == "s-1"

    async def test_upsert_subscribes_to_list(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/profile-import/"):
                return httpx.Response(201, json={"data": {"id": "P1"}})
            body = json.loads(request.content)
            assert body == {"data": [{"type": "profile", "id": "P1"}]}
            return httpx.Response(204)

        client = make_client(handler, list_id="L9")
        await client.upsert("ada@example.com", None, "s-1")

        assert paths == ["/api/profile-import/", "/api/lists/L9/relationships/profiles/"]

    async def test_retries_transient_failures(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"data": {"id": "P1"}})

        client = make_client(handler, list_id="")
        await client.upsert("ada@example.com", "Ada", "s-1")

        assert len(attempts) == 3

    async def test_retries_transport_errors(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"data": {"id": "P1"}})

        client = make_client(handler, list_id="")
        await client.upsert("ada@example.com", "Ada", "s-1")

        assert len(attempts) == 2

    async def test_retries_exhausted(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(429)

        client = make_client(handler, list_id="", max_retries=2)

        with pytest.raises(ProfileSyncError, match="after 3 attempts"):
            await client.upsert("ada@example.com", "Ada", "s-1")

        assert len(attempts) == 3

    async def test_client_error_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(400, json={"errors": [{"detail": "bad email"}]})

        client = make_client(handler, list_id="")

        with pytest.raises(ProfileSyncError, match="HTTP 400"):
            await client.upsert("not-an-email", None, "s-1")

        assert len(attempts) == 1

    async def test_backoff_doubles(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        client = make_client(handler, list_id="", max_retries=3, base_delay=1.0)

        with patch("src.services.customer_profile.asyncio.sleep") as mock_sleep:
            mock_sleep.return_value = None
            with pytest.raises(ProfileSyncError):
                await client.upsert("ada@example.com", None, "s-1")

        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0, 4.0]

    async def test_missing_profile_id_with_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {}})

        client = make_client(handler, list_id="L9")

        with pytest.raises(ProfileSyncError, match="no profile id"):
            await client.upsert("ada@example.com", None, "s-1")
