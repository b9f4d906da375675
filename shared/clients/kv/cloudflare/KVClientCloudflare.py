from urllib.parse import quote

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# Workers KV rejects expiration_ttl values below 60 seconds
MIN_TTL_SECONDS = 60
# maximum page size of the keys listing endpoint
LIST_PAGE_SIZE = 1000


class KVClientCloudflare(KVClientInterface):
    """Key-value client for a Cloudflare Workers KV namespace via the REST API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.cloudflare.com/client/v4", val_type="string")
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._namespace_id = self.get_config_val("NAMESPACE_ID", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Cloudflare"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.cloudflare.com/client/v4"),
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE_ID", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/user/tokens/verify"

    def _get_endpoint_namespace(self) -> str:
        return f"/accounts/{self._account_id}/storage/kv/namespaces/{self._namespace_id}"

    def _get_endpoint_value(self, key: str) -> str:
        return f"{self._get_endpoint_namespace()}/values/{quote(key, safe='')}"

    def _get_endpoint_keys(self) -> str:
        return f"{self._get_endpoint_namespace()}/keys"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_get(self, key: str) -> str | None:
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_value(key))
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise self.request_error(url=str(response.url), status_code=response.status_code, body=response.text)
        return response.text

    async def do_put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        params = {}
        if ttl_seconds is not None:
            params["expiration_ttl"] = max(MIN_TTL_SECONDS, int(ttl_seconds))
        await self.do_request(
            method="PUT",
            content=value.encode("utf-8"),
            params=params or None,
            endpoint=self._get_endpoint_value(key),
            additional_headers={"Content-Type": "text/plain; charset=utf-8"},
            raise_on_error=True,
        )

    async def do_delete(self, key: str) -> None:
        response = await self.do_request(method="DELETE", endpoint=self._get_endpoint_value(key))
        if response.status_code != 404 and not response.is_success:
            raise self.request_error(url=str(response.url), status_code=response.status_code, body=response.text)

    async def do_list_keys(self, prefix: str, limit: int | None = None) -> list[str]:
        """List keys by prefix, following the listing cursor up to the scan cap."""
        max_keys = self._effective_limit(limit)
        keys: list[str] = []
        cursor: str | None = None
        while len(keys) < max_keys:
            params: dict = {"prefix": prefix, "limit": min(LIST_PAGE_SIZE, max(10, max_keys - len(keys)))}
            if cursor:
                params["cursor"] = cursor
            response = await self.do_request(method="GET", params=params, endpoint=self._get_endpoint_keys(), raise_on_error=True)
            body = response.json()
            keys.extend(item["name"] for item in body.get("result", []))
            cursor = (body.get("result_info") or {}).get("cursor")
            if not cursor:
                break
        return keys[:max_keys]
