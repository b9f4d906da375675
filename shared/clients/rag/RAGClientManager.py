import importlib

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager:
    """
    Resolves the optional remote vector index named by RAG_ENGINE.

    When RAG_ENGINE is not set no client is created and the brain runs its
    brute-force similarity search over the key-value store instead.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str | None:
        """
        Reads the vector index engine from ENV configuration.

        Returns:
            str | None: The engine name, capitalised (e.g. "Pinecone"), or None if unset.
        """
        engine = self.helper_config.get_string_val("RAG_ENGINE", default="")
        if not engine:
            return None
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> RAGClientInterface | None:
        """
        Imports shared.clients.rag.{engine}.RAGClient{Engine} and instantiates it.

        Returns:
            RAGClientInterface | None: The configured index client, or None if no engine is set.

        Raises:
            ValueError: If the engine is unknown.
        """
        engine = self._get_engine_from_env()
        if engine is None:
            self.logging.info("No RAG engine configured, using key-value similarity search.")
            return None
        class_name = f"RAGClient{engine}"
        try:
            module = importlib.import_module(f"shared.clients.rag.{engine.lower()}.{class_name}")
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported RAG engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated RAG client for engine: %s", engine)
        return client

    def get_client(self) -> RAGClientInterface | None:
        """
        Returns the instantiated vector index client, if any.

        Returns:
            RAGClientInterface | None: The client instance or None.
        """
        return self.client
