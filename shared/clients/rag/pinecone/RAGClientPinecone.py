from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import IndexQueryResponse, IndexStats, VectorRecord
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class RAGClientPinecone(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._namespace = self.get_config_val("NAMESPACE", default="", val_type="string") or None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    def get_default_namespace(self) -> str | None:
        return self._namespace

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Api-Key": self._api_key, "Accept": "application/json"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_upsert(self) -> str:
        return "/vectors/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_delete(self) -> str:
        return "/vectors/delete"

    def _get_endpoint_fetch(self) -> str:
        return "/vectors/fetch"

    def _get_endpoint_stats(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_update(self) -> str:
        return "/vectors/update"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, vectors: list[VectorRecord], namespace: str | None) -> dict:
        payload: dict = {"vectors": [v.model_dump(exclude_none=True) for v in vectors]}
        if namespace:
            payload["namespace"] = namespace
        return payload

    def get_query_payload(self, vector: list[float], top_k: int, filter: dict | None, include_metadata: bool, namespace: str | None) -> dict:
        payload: dict = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": include_metadata,
            "includeValues": False,
        }
        if filter:
            payload["filter"] = filter
        if namespace:
            payload["namespace"] = namespace
        return payload

    def get_delete_payload(self, ids: list[str] | None = None, filter: dict | None = None, delete_all: bool = False, namespace: str | None = None) -> dict:
        payload: dict = {}
        if delete_all:
            payload["deleteAll"] = True
        elif filter is not None:
            payload["filter"] = filter
        else:
            payload["ids"] = ids or []
        if namespace:
            payload["namespace"] = namespace
        return payload

    def get_update_payload(self, id: str, metadata: dict, namespace: str | None) -> dict:
        payload: dict = {"id": id, "setMetadata": metadata}
        if namespace:
            payload["namespace"] = namespace
        return payload

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_response(self, raw_response: dict) -> IndexQueryResponse:
        return IndexQueryResponse(
            matches=raw_response.get("matches") or [],
            namespace=raw_response.get("namespace"),
        )

    def extract_fetch_response(self, raw_response: dict) -> dict[str, VectorRecord]:
        vectors = raw_response.get("vectors") or {}
        return {vector_id: VectorRecord.model_validate(vector) for vector_id, vector in vectors.items()}

    def extract_stats_response(self, raw_response: dict) -> IndexStats:
        return IndexStats.model_validate(raw_response)
