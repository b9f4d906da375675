import importlib

from shared.helper.HelperConfig import HelperConfig
from shared.clients.kv.KVClientInterface import KVClientInterface


class KVClientManager:
    """
    Resolves the key-value backend named by KV_ENGINE (default "memory").
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the key-value engine from ENV configuration.

        Returns:
            str: The engine name, capitalised (e.g. "Memory").
        """
        engine = self.helper_config.get_string_val("KV_ENGINE", default="memory")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> KVClientInterface:
        """
        Imports shared.clients.kv.{engine}.KVClient{Engine} and instantiates it.

        Returns:
            KVClientInterface: The configured key-value client.

        Raises:
            ValueError: If the engine is unknown.
        """
        engine = self._get_engine_from_env()
        class_name = f"KVClient{engine}"
        try:
            module = importlib.import_module(f"shared.clients.kv.{engine.lower()}.{class_name}")
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported KV engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated KV client for engine: %s", engine)
        return client

    def get_client(self) -> KVClientInterface:
        """
        Returns the instantiated key-value client.

        Returns:
            KVClientInterface: The key-value client instance.
        """
        return self.client
