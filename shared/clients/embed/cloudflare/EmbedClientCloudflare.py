from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientCloudflare(EmbedClientInterface):
    """Embedding client for Cloudflare Workers AI text embedding models."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.cloudflare.com/client/v4", val_type="string")
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Cloudflare"

    def _get_default_model(self) -> str | None:
        return "@cf/baai/bge-small-en-v1.5"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.cloudflare.com/client/v4"),
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
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

    def get_endpoint_embedding(self) -> str:
        return f"/accounts/{self._account_id}/ai/run/{self.embed_model}"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"text": texts}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a Workers AI response.

        The response is wrapped in the Cloudflare API envelope:
        {"success": true, "result": {"shape": [n, d], "data": [[...], ...]}}

        Raises:
            ValueError: If the call was not successful or holds no vectors.
        """
        if response_data.get("success") is False:
            raise ValueError(f"Workers AI reported errors: {response_data.get('errors')}")
        data = (response_data.get("result") or {}).get("data")
        if not data or not data[0]:
            raise ValueError(
                "Workers AI response does not contain valid embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return data
