import httpx

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class KVClientMemory(KVClientInterface):
    """Process-local key-value store with TTL expiry.

    Used for development, single-process deployments and tests. Expired
    keys are purged lazily on access and on listing.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        # key -> (value, expires_at_ms or None)
        self._data: dict[str, tuple[str, int | None]] = {}

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "memory://"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        """Nothing to connect to."""

    async def close(self) -> None:
        """Nothing to release; stored data survives until the process ends."""

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _is_expired(self, expires_at: int | None) -> bool:
        return expires_at is not None and expires_at <= HelperTime.now_ms()

    async def do_get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._data[key]
            return None
        return value

    async def do_put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = HelperTime.now_ms() + ttl_seconds * 1000 if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    async def do_delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def do_list_keys(self, prefix: str, limit: int | None = None) -> list[str]:
        max_keys = self._effective_limit(limit)
        keys: list[str] = []
        for key in sorted(self._data):
            if not key.startswith(prefix):
                continue
            if self._is_expired(self._data[key][1]):
                del self._data[key]
                continue
            keys.append(key)
            if len(keys) >= max_keys:
                break
        return keys
