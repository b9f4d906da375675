import importlib

from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager:
    """
    Resolves the embedding backend named by EMBED_ENGINE.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the embedding engine from ENV configuration.

        Returns:
            str: The engine name, capitalised (e.g. "Ollama").

        Raises:
            ValueError: If EMBED_ENGINE is not set.
        """
        engine = self.helper_config.get_string_val("EMBED_ENGINE")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> EmbedClientInterface:
        """
        Imports shared.clients.embed.{engine}.EmbedClient{Engine} and instantiates it.

        Returns:
            EmbedClientInterface: The configured embedding client.

        Raises:
            ValueError: If the engine is unknown.
        """
        engine = self._get_engine_from_env()
        class_name = f"EmbedClient{engine}"
        try:
            module = importlib.import_module(f"shared.clients.embed.{engine.lower()}.{class_name}")
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported Embed engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Embed client for engine: %s", engine)
        return client

    def get_client(self) -> EmbedClientInterface:
        """
        Returns the instantiated embedding client.

        Returns:
            EmbedClientInterface: The embedding client instance.
        """
        return self.client
