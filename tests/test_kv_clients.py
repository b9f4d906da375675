"""Tests for the key-value engines."""

import httpx
import pytest

from shared.clients.kv.KVClientManager import KVClientManager
from shared.clients.kv.cloudflare.KVClientCloudflare import KVClientCloudflare
from shared.clients.kv.memory.KVClientMemory import KVClientMemory
from shared.exceptions import ClientRequestError

CF_BASE = "https://api.cloudflare.com/client/v4"
NAMESPACE_URL = f"{CF_BASE}/accounts/acct/storage/kv/namespaces/ns1"


class TestKVClientMemory:
    @pytest.mark.asyncio
    async def test_get_put_delete(self, kv_client):
        assert await kv_client.do_get("a") is None
        await kv_client.do_put("a", "1")
        assert await kv_client.do_get("a") == "1"
        await kv_client.do_delete("a")
        await kv_client.do_delete("a")
        assert await kv_client.do_get("a") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, kv_client, clock):
        await kv_client.do_put("a", "1", ttl_seconds=10)
        clock.advance(9)
        assert await kv_client.do_get("a") == "1"
        clock.advance(1)
        assert await kv_client.do_get("a") is None

    @pytest.mark.asyncio
    async def test_list_keys_by_prefix_sorted_and_limited(self, kv_client, clock):
        for key in ["brain:c", "brain:a", "index:type:x", "brain:b"]:
            await kv_client.do_put(key, "v")
        await kv_client.do_put("brain:expired", "v", ttl_seconds=1)
        clock.advance(2)
        assert await kv_client.do_list_keys("brain:") == ["brain:a", "brain:b", "brain:c"]
        assert await kv_client.do_list_keys("brain:", limit=2) == ["brain:a", "brain:b"]

    @pytest.mark.asyncio
    async def test_list_limit_caps_scan(self, helper_config, monkeypatch):
        monkeypatch.setenv("KV_LIST_LIMIT", "2")
        client = KVClientMemory(helper_config=helper_config)
        for i in range(5):
            await client.do_put(f"k{i}", "v")
        assert len(await client.do_list_keys("k", limit=100)) == 2

    @pytest.mark.asyncio
    async def test_healthcheck(self, kv_client):
        response = await kv_client.do_healthcheck()
        assert response.status_code == 200


@pytest.fixture
def cloudflare_env(monkeypatch):
    monkeypatch.setenv("KV_CLOUDFLARE_ACCOUNT_ID", "acct")
    monkeypatch.setenv("KV_CLOUDFLARE_NAMESPACE_ID", "ns1")
    monkeypatch.setenv("KV_CLOUDFLARE_API_KEY", "cf-token")



class TestKVClientCloudflare:
    def test_missing_config_raises(self, helper_config):
        with pytest.raises(ValueError):
            KVClientCloudflare(helper_config=helper_config)

    @pytest.mark.asyncio
    async def test_get_value(self, respx_mock, helper_config, cloudflare_env):
        route = respx_mock.get(f"{NAMESPACE_URL}/values/m1").mock(return_value=httpx.Response(200, text='{"id": "m1"}'))
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            assert await client.do_get("m1") == '{"id": "m1"}'
        finally:
            await client.close()
        assert route.calls.last.request.headers["Authorization"] == "Bearer cf-token"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, respx_mock, helper_config, cloudflare_env):
        respx_mock.get(f"{NAMESPACE_URL}/values/nope").mock(return_value=httpx.Response(404, json={"success": False}))
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            assert await client.do_get("nope") is None
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_get_error_raises(self, respx_mock, helper_config, cloudflare_env):
        respx_mock.get(f"{NAMESPACE_URL}/values/k").mock(return_value=httpx.Response(500, text="boom"))
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            with pytest.raises(ClientRequestError) as exc_info:
                await client.do_get("k")
        finally:
            await client.close()
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "boom"

    @pytest.mark.asyncio
    async def test_put_sends_text_and_clamped_ttl(self, respx_mock, helper_config, cloudflare_env):
        route = respx_mock.put(f"{NAMESPACE_URL}/values/k").mock(return_value=httpx.Response(200, json={"success": True}))
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            await client.do_put("k", "payload", ttl_seconds=5)
            await client.do_put("k", "payload")
        finally:
            await client.close()
        first, second = route.calls
        assert first.request.content == b"payload"
        assert first.request.url.params["expiration_ttl"] == "60"
        assert first.request.headers["Content-Type"].startswith("text/plain")
        assert "expiration_ttl" not in second.request.url.params

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing_key(self, respx_mock, helper_config, cloudflare_env):
        respx_mock.delete(f"{NAMESPACE_URL}/values/k").mock(return_value=httpx.Response(404))
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            await client.do_delete("k")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_list_keys_follows_cursor(self, respx_mock, helper_config, cloudflare_env):
        route = respx_mock.get(f"{NAMESPACE_URL}/keys").mock(
            side_effect=[
                httpx.Response(200, json={"result": [{"name": "brain:a"}, {"name": "brain:b"}], "result_info": {"cursor": "c1"}}),
                httpx.Response(200, json={"result": [{"name": "brain:c"}], "result_info": {"cursor": ""}}),
            ]
        )
        client = KVClientCloudflare(helper_config=helper_config)
        await client.boot()
        try:
            assert await client.do_list_keys("brain:") == ["brain:a", "brain:b", "brain:c"]
        finally:
            await client.close()
        assert route.calls[0].request.url.params["prefix"] == "brain:"
        assert route.calls[1].request.url.params["cursor"] == "c1"


class TestKVClientManager:
    def test_defaults_to_memory(self, helper_config):
        assert isinstance(KVClientManager(helper_config=helper_config).get_client(), KVClientMemory)

    def test_selects_cloudflare(self, helper_config, cloudflare_env, monkeypatch):
        monkeypatch.setenv("KV_ENGINE", "cloudflare")
        assert isinstance(KVClientManager(helper_config=helper_config).get_client(), KVClientCloudflare)

    def test_unknown_engine(self, helper_config, monkeypatch):
        monkeypatch.setenv("KV_ENGINE", "redis")
        with pytest.raises(ValueError):
            KVClientManager(helper_config=helper_config)
