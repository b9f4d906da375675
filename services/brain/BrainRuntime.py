"""Client wiring for the brain.

Resolves the embedding, key-value and optional vector index clients from
the environment, boots them, and hands out a ready BrainService:

    async with BrainRuntime(helper_config) as brain:
        await brain.create({"id": "m1", "content": "...", "type": "note"})
"""

from types import TracebackType

from services.brain.BrainService import BrainService
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.kv.KVClientManager import KVClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig


class BrainRuntime:
    def __init__(self, helper_config: HelperConfig, healthcheck: bool = True) -> None:
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.healthcheck = healthcheck

        self.embed_client = EmbedClientManager(helper_config=helper_config).get_client()
        self.kv_client = KVClientManager(helper_config=helper_config).get_client()
        self.rag_client = RAGClientManager(helper_config=helper_config).get_client()
        self._booted: list[ClientInterface] = []

    def _get_clients(self) -> list[ClientInterface]:
        clients: list[ClientInterface] = [self.embed_client, self.kv_client]
        if self.rag_client is not None:
            clients.append(self.rag_client)
        return clients

    async def boot(self) -> BrainService:
        """Boot every client and build the service.

        Raises:
            ClientRequestError, httpx.HTTPError: If a backend is unreachable
                during its healthcheck. Already booted clients are closed.
        """
        try:
            for client in self._get_clients():
                await client.boot()
                self._booted.append(client)
                if self.healthcheck:
                    response = await client.do_healthcheck()
                    if not response.is_success:
                        raise client.request_error(url=str(response.url), status_code=response.status_code, body=response.text)
                self.logging.debug("Booted %s client '%s'", client.get_client_type(), client.get_engine_name())
        except Exception:
            await self.close()
            raise

        self.logging.info(
            "Brain runtime ready (embed: %s, kv: %s, index: %s)",
            self.embed_client.get_engine_name(),
            self.kv_client.get_engine_name(),
            self.rag_client.get_engine_name() if self.rag_client else "none",
            color="green",
        )
        return BrainService(
            helper_config=self.helper_config,
            embed_client=self.embed_client,
            kv_client=self.kv_client,
            rag_client=self.rag_client,
        )

    async def close(self) -> None:
        while self._booted:
            await self._booted.pop().close()

    async def __aenter__(self) -> BrainService:
        return await self.boot()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
