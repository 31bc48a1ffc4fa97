"""
Tests for the match data provider client.
"""

import httpx
import pytest

from match_herald.config import OriginConfig
from match_herald.exceptions import (
    ConfigurationError,
    NotFoundError,
    OriginAPIError,
    OriginAuthenticationError,
    OriginRateLimitError,
    TransientOriginError,
)
from match_herald.origin_client import OriginClient, sanitize_api_key


def make_client(handler, api_key: str = "secret") -> OriginClient:
    config = OriginConfig(api_url="https://api.test", api_key=api_key)
    return OriginClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("abc", "abc"),
        ("  abc  ", "abc"),
        ("Bearer abc", "abc"),
        ("Authorization: Bearer abc", "abc"),
        ("bearer Bearer abc", "abc"),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_sanitize_api_key(raw, expected):
    assert sanitize_api_key(raw) == expected


class TestOriginClient:
    """Test OriginClient request handling and error mapping."""

    @pytest.mark.asyncio
    async def test_get_account_sends_bearer_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"data": {"puuid": "p1"}})

        client = make_client(handler, api_key="Authorization: Bearer secret")
        async with client:
            account = await client.get_account("Some Name", "NA1")

        assert account == {"puuid": "p1"}
        assert seen["auth"] == "Bearer secret"
        assert seen["url"].endswith("/valorant/v1/account/Some%20Name/NA1")

    @pytest.mark.asyncio
    async def test_not_found_is_distinguished(self):
        client = make_client(lambda request: httpx.Response(404))

        with pytest.raises(NotFoundError) as exc_info:
            await client.get_standing("na", "Player", "NA1")

        assert not isinstance(exc_info.value, TransientOriginError)
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        client = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "30"})
        )

        with pytest.raises(OriginRateLimitError) as exc_info:
            await client.get_recent_matches("na", "Player", "NA1")

        assert isinstance(exc_info.value, TransientOriginError)
        assert exc_info.value.retry_after == 30.0
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client = make_client(lambda request: httpx.Response(503))

        with pytest.raises(TransientOriginError) as exc_info:
            await client.get_match("na", "m1")

        assert exc_info.value.status_code == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(TransientOriginError):
            await client.get_account("Player", "NA1")
        await client.close()

    @pytest.mark.asyncio
    async def test_other_client_errors(self):
        client = make_client(lambda request: httpx.Response(400))

        with pytest.raises(OriginAPIError) as exc_info:
            await client.get_account("Player", "NA1")

        assert not isinstance(exc_info.value, TransientOriginError)
        assert exc_info.value.status_code == 400
        await client.close()

    @pytest.mark.asyncio
    async def test_unauthorized_retries_with_query_key(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.params.get("api_key") == "secret":
                return httpx.Response(200, json={"data": {"puuid": "p1"}})
            return httpx.Response(401)

        client = make_client(handler)
        account = await client.get_account("Player", "NA1")

        assert account == {"puuid": "p1"}
        assert len(requests) == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_unauthorized_after_retry_raises(self):
        client = make_client(lambda request: httpx.Response(401))

        with pytest.raises(OriginAuthenticationError):
            await client.get_account("Player", "NA1")
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = make_client(lambda request: httpx.Response(200), api_key="")

        with pytest.raises(ConfigurationError):
            await client.get_account("Player", "NA1")
        await client.close()

    @pytest.mark.asyncio
    async def test_recent_matches_filtered_client_side(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"metadata": {"matchid": "m3", "mode": "Competitive"}},
                        {"metadata": {"matchid": "m2", "mode": "Unrated"}},
                        {"metadata": {"matchid": "m1", "mode": "competitive"}},
                    ]
                },
            )

        client = make_client(handler)
        matches = await client.get_recent_matches("na", "Player", "NA1", size=1)

        assert [m["metadata"]["matchid"] for m in matches] == ["m3"]
        assert seen["params"] == {"size": "3", "start": "0", "filter": "competitive"}
        await client.close()

    @pytest.mark.asyncio
    async def test_recent_matches_without_mode(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"data": [{"metadata": {}}]})

        client = make_client(handler)
        matches = await client.get_recent_matches("na", "P", "T", size=5, mode=None)

        assert len(matches) == 1
        assert seen["params"] == {"size": "5", "start": "0"}
        await client.close()

    @pytest.mark.asyncio
    async def test_request_size_is_capped(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["size"] = request.url.params.get("size")
            return httpx.Response(200, json={"data": []})

        client = make_client(handler)
        await client.get_recent_matches("na", "P", "T", size=10)

        assert seen["size"] == "20"
        await client.close()

    @pytest.mark.asyncio
    async def test_standing_history_not_found_is_empty(self):
        client = make_client(lambda request: httpx.Response(404))

        assert await client.get_standing_history("na", "Player", "NA1") == []
        await client.close()

    @pytest.mark.asyncio
    async def test_standing_history(self):
        history = [{"match_id": "m1", "mmr_change_to_last_game": 18}]
        client = make_client(
            lambda request: httpx.Response(200, json={"data": history})
        )

        assert await client.get_standing_history("na", "Player", "NA1") == history
        await client.close()
