from abc import abstractmethod
import asyncio
from typing import Any

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorRecord import IndexQueryResponse, IndexStats, VectorRecord
from shared.exceptions import RemoteIndexFailure

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Thin client over a remote approximate-similarity vector index.

    Every call is a single HTTP round trip. Non-2xx responses raise
    RemoteIndexFailure carrying the status code and response body.
    """

    request_error = RemoteIndexFailure

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.upsert_batch_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_UPSERT_BATCH_SIZE", default=100))
        self.upsert_delay_ms = helper_config.get_number_val(f"{self.get_client_type().upper()}_UPSERT_DELAY_MS", default=100)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_default_namespace(self) -> str | None:
        """
        Returns the namespace used when a call does not name one.
        """
        return None

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        """
        Returns the endpoint path for upsert requests (e.g. "/vectors/upsert").
        """
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity queries (e.g. "/query").
        """
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for delete requests (e.g. "/vectors/delete").
        """
        pass

    @abstractmethod
    def _get_endpoint_fetch(self) -> str:
        """
        Returns the endpoint path for fetching vectors by id (e.g. "/vectors/fetch").
        """
        pass

    @abstractmethod
    def _get_endpoint_stats(self) -> str:
        """
        Returns the endpoint path for index statistics (e.g. "/describe_index_stats").
        """
        pass

    @abstractmethod
    def _get_endpoint_update(self) -> str:
        """
        Returns the endpoint path for metadata updates (e.g. "/vectors/update").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_upsert_payload(self, vectors: list[VectorRecord], namespace: str | None) -> dict:
        """Builds the backend-specific request body for an upsert."""
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], top_k: int, filter: dict | None, include_metadata: bool, namespace: str | None) -> dict:
        """Builds the backend-specific request body for a similarity query."""
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str] | None = None, filter: dict | None = None, delete_all: bool = False, namespace: str | None = None) -> dict:
        """Builds the backend-specific request body for a delete by ids, by filter, or of everything."""
        pass

    @abstractmethod
    def get_update_payload(self, id: str, metadata: dict, namespace: str | None) -> dict:
        """Builds the backend-specific request body for a metadata patch."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_query_response(self, raw_response: dict) -> IndexQueryResponse:
        """Parses a raw query response into ranked matches."""
        pass

    @abstractmethod
    def extract_fetch_response(self, raw_response: dict) -> dict[str, VectorRecord]:
        """Parses a raw fetch response into vectors keyed by id."""
        pass

    @abstractmethod
    def extract_stats_response(self, raw_response: dict) -> IndexStats:
        """Parses a raw stats response."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _resolve_namespace(self, namespace: str | None) -> str | None:
        return namespace if namespace is not None else self.get_default_namespace()

    async def do_healthcheck(self) -> httpx.Response:
        """Check the index by requesting its statistics."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_stats())

    async def do_upsert(self, vectors: list[VectorRecord], namespace: str | None = None) -> dict:
        """Insert or replace vectors in the index.

        Args:
            vectors (list[VectorRecord]): The vectors to upsert.
            namespace (str | None): Target namespace.

        Returns:
            dict: The backend response body (e.g. {"upsertedCount": 3}).
        """
        resp = await self.do_request(
            method="POST",
            json=self.get_upsert_payload(vectors, self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_upsert(),
            raise_on_error=True,
        )
        return resp.json() if resp.content else {}

    async def do_batch_upsert(self, vectors: list[VectorRecord], batch_size: int | None = None, namespace: str | None = None) -> list[dict]:
        """Upsert vectors in fixed-size batches with a pause between batches.

        A failing batch raises and the remaining batches are not sent.

        Args:
            vectors (list[VectorRecord]): The vectors to upsert.
            batch_size (int | None): Vectors per request, defaults to RAG_UPSERT_BATCH_SIZE.
            namespace (str | None): Target namespace.

        Returns:
            list[dict]: One backend response per batch.
        """
        batch_size = batch_size or self.upsert_batch_size
        results: list[dict] = []
        for batch_start in range(0, len(vectors), batch_size):
            batch = vectors[batch_start: batch_start + batch_size]
            results.append(await self.do_upsert(batch, namespace=namespace))
            if batch_start + batch_size < len(vectors):
                await asyncio.sleep(self.upsert_delay_ms / 1000)
        return results

    async def do_query(self, vector: list[float], top_k: int, filter: dict | None = None, include_metadata: bool = True, namespace: str | None = None) -> IndexQueryResponse:
        """Find the top_k vectors most similar to vector.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Number of matches to return.
            filter (dict | None): Metadata filter restricting the candidates.
            include_metadata (bool): Return stored metadata with each match.
            namespace (str | None): Namespace to search.

        Returns:
            IndexQueryResponse: Matches ranked by descending score.
        """
        resp = await self.do_request(
            method="POST",
            json=self.get_query_payload(vector, top_k, filter, include_metadata, self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_query(),
            raise_on_error=True,
        )
        return self.extract_query_response(resp.json())

    async def do_delete_by_ids(self, ids: list[str], namespace: str | None = None) -> None:
        """Delete vectors by id."""
        await self.do_request(
            method="POST",
            json=self.get_delete_payload(ids=ids, namespace=self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_delete(),
            raise_on_error=True,
        )

    async def do_delete_by_filter(self, filter: dict, namespace: str | None = None) -> None:
        """Delete every vector whose metadata matches filter.

        Used to drop all chunks of an entity via {"originalId": entity_id}.
        """
        await self.do_request(
            method="POST",
            json=self.get_delete_payload(filter=filter, namespace=self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_delete(),
            raise_on_error=True,
        )

    async def do_delete_all(self, namespace: str | None = None) -> None:
        """Delete every vector in the namespace."""
        await self.do_request(
            method="POST",
            json=self.get_delete_payload(delete_all=True, namespace=self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_delete(),
            raise_on_error=True,
        )

    async def do_fetch(self, ids: list[str], namespace: str | None = None) -> dict[str, VectorRecord]:
        """Fetch stored vectors by id.

        Returns:
            dict[str, VectorRecord]: Found vectors keyed by id; missing ids are absent.
        """
        params: list[tuple[str, Any]] = [("ids", vector_id) for vector_id in ids]
        namespace = self._resolve_namespace(namespace)
        if namespace:
            params.append(("namespace", namespace))
        resp = await self.do_request(method="GET", params=params, endpoint=self._get_endpoint_fetch(), raise_on_error=True)
        return self.extract_fetch_response(resp.json())

    async def do_stats(self) -> IndexStats:
        """Return index-wide statistics."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_stats(), raise_on_error=True)
        return self.extract_stats_response(resp.json())

    async def do_update_metadata(self, id: str, metadata: dict, namespace: str | None = None) -> None:
        """Merge metadata into the stored metadata of a single vector."""
        await self.do_request(
            method="POST",
            json=self.get_update_payload(id, metadata, self._resolve_namespace(namespace)),
            endpoint=self._get_endpoint_update(),
            raise_on_error=True,
        )
