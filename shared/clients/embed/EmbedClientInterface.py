from abc import abstractmethod
import re

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import EmbeddingFailure

from shared.helper.HelperConfig import HelperConfig

SENTENCE_SPLIT = re.compile(r"[.!?]+")
DEFAULT_CHUNK_LENGTH = 400


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=self._get_default_model())
        self.embed_model_max_chars = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_MODEL_MAX_CHARS", default=512))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "embed"

    def _get_default_model(self) -> str | None:
        """
        Returns the model used when EMBED_MODEL is not set. None makes EMBED_MODEL required.
        """
        return None

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    @staticmethod
    def chunk_text(text: str, max_length: int = DEFAULT_CHUNK_LENGTH) -> list[str]:
        """Split text into sentence-aligned chunks of at most max_length characters.

        Text that already fits is returned unchanged as a single chunk. Longer
        text is split on sentence-terminal punctuation and sentences are packed
        greedily; every emitted chunk is re-terminated with ".", so a sentence
        fits only while it plus that closing "." stays within max_length. A
        sentence of max_length characters or more becomes its own chunk of
        len(sentence) + 1 characters.

        Args:
            text (str): The text to split.
            max_length (int): Maximum chunk length in characters.

        Returns:
            list[str]: Ordered, non-empty list of chunks.
        """
        if len(text) <= max_length:
            return [text]

        sentences = [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]
        if not sentences:
            return [text]

        chunks: list[str] = []
        current = ""
        for sentence in sentences:
            # +2 for the ". " joiner, +1 for the closing "."
            if current and len(current) + 2 + len(sentence) + 1 <= max_length:
                current = f"{current}. {sentence}"
                continue
            if current:
                chunks.append(current + ".")
            current = sentence
        if current:
            chunks.append(current + ".")
        return chunks

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingFailure: If the request fails or the response holds no valid embeddings.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except httpx.HTTPError as exc:
            self.logging.error("Embedding request to %s failed: %s", self.get_engine_name(), exc)
            raise EmbeddingFailure(f"Embedding request failed: {exc}") from exc
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingFailure("Embedding request failed with status %d." % response.status_code)
        try:
            return self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise EmbeddingFailure(str(exc)) from exc

    async def do_embed_text(self, text: str) -> list[float]:
        """Embed a single text, truncated to the model's maximum input length.

        Args:
            text (str): The text to embed.

        Returns:
            list[float]: The embedding vector.

        Raises:
            EmbeddingFailure: If inference fails or returns no usable vector.
        """
        vectors = await self.do_embed([text[: self.embed_model_max_chars]])
        if not vectors or not vectors[0]:
            raise EmbeddingFailure("Embedding response did not contain a vector.")
        vector = vectors[0]
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in vector):
            raise EmbeddingFailure("Embedding response contained non-numeric values.")
        return [float(v) for v in vector]

    async def do_embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts one after another, preserving order.

        A failure on any element aborts the whole batch.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            list[list[float]]: One vector per input text.
        """
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(await self.do_embed_text(text))
        return vectors
