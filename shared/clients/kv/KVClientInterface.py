from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class KVClientInterface(ClientInterface):
    """Key-value store boundary: get, put with TTL, delete and prefix listing."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        # upper bound of keys returned by a single prefix listing
        self.list_limit = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_LIST_LIMIT", default=10000))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "kv"
        """
        return "kv"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_get(self, key: str) -> str | None:
        """Read the raw value stored under key.

        Args:
            key (str): The key to read.

        Returns:
            str | None: The stored value, or None if absent or expired.
        """
        pass

    @abstractmethod
    async def do_put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Write value under key, optionally expiring after ttl_seconds.

        Args:
            key (str): The key to write.
            value (str): The serialized value.
            ttl_seconds (int | None): Seconds until the key expires. None keeps it forever.
        """
        pass

    @abstractmethod
    async def do_delete(self, key: str) -> None:
        """Remove key. Removing an absent key is not an error.

        Args:
            key (str): The key to delete.
        """
        pass

    @abstractmethod
    async def do_list_keys(self, prefix: str, limit: int | None = None) -> list[str]:
        """List keys starting with prefix in lexicographic order.

        Args:
            prefix (str): Key prefix to match.
            limit (int | None): Maximum number of keys. Defaults to and is capped by list_limit.

        Returns:
            list[str]: Matching key names.
        """
        pass

    def _effective_limit(self, limit: int | None) -> int:
        return self.list_limit if limit is None else min(limit, self.list_limit)
