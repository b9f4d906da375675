"""Shared fixtures: env-configured HelperConfig, a controllable clock, an
in-memory key-value client, a deterministic keyword-bag embedding client
and a respx-backed in-memory Pinecone index."""

import json
import logging
import os
import re

import httpx
import pytest
import pytest_asyncio
import respx

from services.brain.BrainService import BrainService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.kv.memory.KVClientMemory import KVClientMemory
from shared.clients.rag.pinecone.RAGClientPinecone import RAGClientPinecone
from shared.exceptions import EmbeddingFailure
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperVector import cosine_similarity
from shared.logging.logging_setup import ColorLogger
from shared.models.config import EnvConfig

PINECONE_URL = "https://brain-index.svc.test"
START_MS = 1_700_000_000_000
CONFIG_PREFIXES = ("EMBED_", "KV_", "RAG_", "BRAIN_")


##########################################
################ CONFIG ##################
##########################################

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Strip backend configuration from the environment and disable bulk pauses."""
    for key in list(os.environ):
        if key.startswith(CONFIG_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("BRAIN_BULK_DELAY_MS", "0")
    monkeypatch.setenv("RAG_UPSERT_DELAY_MS", "0")


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("brain.tests")))


class FakeClock:
    def __init__(self, start: int):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock(START_MS)
    monkeypatch.setattr(HelperTime, "now_ms", fake)
    return fake


##########################################
################ CLIENTS #################
##########################################

@pytest.fixture
def kv_client(helper_config) -> KVClientMemory:
    return KVClientMemory(helper_config=helper_config)


class KeywordEmbedClient(EmbedClientInterface):
    """Embeds text as a bag of lowercase words, one dimension per distinct word.

    Texts sharing no word score 0.0; identical word sets score 1.0.
    """

    DIMENSIONS = 512

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._vocab: dict[str, int] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def _get_engine_name(self) -> str:
        return "Keyword"

    def _get_default_model(self) -> str | None:
        return "keyword-bag"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "keyword://"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    def get_endpoint_embedding(self) -> str:
        return ""

    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"input": texts}

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        return response_data["embeddings"]

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.DIMENSIONS
        for word in re.findall(r"\w+", text.lower()):
            index = self._vocab.setdefault(word, len(self._vocab))
            values[index] += 1.0
        return values

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else texts
        vectors = []
        for text in texts:
            self.calls.append(text)
            if any(marker in text for marker in self.fail_on):
                raise EmbeddingFailure("Embedding request failed with status 500.")
            vectors.append(self.vector(text))
        return vectors


@pytest.fixture
def embed_client(helper_config) -> KeywordEmbedClient:
    return KeywordEmbedClient(helper_config=helper_config)


@pytest.fixture
def brain(helper_config, embed_client, kv_client, clock) -> BrainService:
    """Brain without a remote index: brute-force similarity search."""
    return BrainService(helper_config=helper_config, embed_client=embed_client, kv_client=kv_client)


##########################################
############## REMOTE INDEX ##############
##########################################

class FakePineconeIndex:
    """In-memory stand-in for a Pinecone index host, served through respx."""

    def __init__(self, router: respx.MockRouter):
        self.vectors: dict[str, dict] = {}
        self.requests: list[tuple[str, dict]] = []
        self.fail_status: int | None = None
        self.last_headers: httpx.Headers | None = None
        router.post("/vectors/upsert").mock(side_effect=self._upsert)
        router.post("/query").mock(side_effect=self._query)
        router.post("/vectors/delete").mock(side_effect=self._delete)
        router.get("/vectors/fetch").mock(side_effect=self._fetch)
        router.get("/describe_index_stats").mock(side_effect=self._stats)
        router.post("/vectors/update").mock(side_effect=self._update)

    def _record(self, name: str, request: httpx.Request) -> dict | httpx.Response:
        self.last_headers = request.headers
        body = json.loads(request.content) if request.content else {}
        self.requests.append((name, body))
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, text="index unavailable")
        return body

    def _upsert(self, request: httpx.Request) -> httpx.Response:
        body = self._record("upsert", request)
        if isinstance(body, httpx.Response):
            return body
        for vector in body["vectors"]:
            self.vectors[vector["id"]] = vector
        return httpx.Response(200, json={"upsertedCount": len(body["vectors"])})

    def _query(self, request: httpx.Request) -> httpx.Response:
        body = self._record("query", request)
        if isinstance(body, httpx.Response):
            return body
        scored = [
            (cosine_similarity(body["vector"], vector["values"]), vector)
            for vector in self.vectors.values()
            if self._matches(vector.get("metadata") or {}, body.get("filter") or {})
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        matches = []
        for score, vector in scored[: body["topK"]]:
            match = {"id": vector["id"], "score": score}
            if body.get("includeMetadata"):
                match["metadata"] = vector.get("metadata") or {}
            matches.append(match)
        return httpx.Response(200, json={"matches": matches, "namespace": body.get("namespace", "")})

    def _delete(self, request: httpx.Request) -> httpx.Response:
        body = self._record("delete", request)
        if isinstance(body, httpx.Response):
            return body
        if body.get("deleteAll"):
            self.vectors.clear()
        elif "filter" in body:
            for vector_id in [i for i, v in self.vectors.items() if self._matches(v.get("metadata") or {}, body["filter"])]:
                del self.vectors[vector_id]
        else:
            for vector_id in body.get("ids", []):
                self.vectors.pop(vector_id, None)
        return httpx.Response(200, json={})

    def _fetch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(("fetch", dict(request.url.params)))
        ids = request.url.params.get_list("ids")
        return httpx.Response(200, json={"vectors": {i: self.vectors[i] for i in ids if i in self.vectors}})

    def _stats(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(("stats", {}))
        self.last_headers = request.headers
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, text="index unavailable")
        return httpx.Response(
            200,
            json={
                "namespaces": {"": {"vectorCount": len(self.vectors)}},
                "dimension": KeywordEmbedClient.DIMENSIONS,
                "indexFullness": 0.0,
                "totalVectorCount": len(self.vectors),
            },
        )

    def _update(self, request: httpx.Request) -> httpx.Response:
        body = self._record("update", request)
        if isinstance(body, httpx.Response):
            return body
        vector = self.vectors[body["id"]]
        vector["metadata"] = {**(vector.get("metadata") or {}), **body["setMetadata"]}
        return httpx.Response(200, json={})

    @staticmethod
    def _matches(metadata: dict, filter: dict) -> bool:
        for key, condition in filter.items():
            value = metadata.get(key)
            if isinstance(condition, dict):
                if "$gte" in condition and (value is None or value < condition["$gte"]):
                    return False
                if "$lte" in condition and (value is None or value > condition["$lte"]):
                    return False
            elif value != condition:
                return False
        return True

    def requests_named(self, name: str) -> list[dict]:
        return [body for request_name, body in self.requests if request_name == name]


@pytest.fixture
def pinecone_env(monkeypatch):
    monkeypatch.setenv("RAG_PINECONE_BASE_URL", PINECONE_URL)
    monkeypatch.setenv("RAG_PINECONE_API_KEY", "pc-test-key")


@pytest.fixture
def pinecone_index(pinecone_env):
    with respx.mock(base_url=PINECONE_URL, assert_all_called=False) as router:
        yield FakePineconeIndex(router)


@pytest_asyncio.fixture
async def pinecone_client(helper_config, pinecone_index):
    async with RAGClientPinecone(helper_config=helper_config) as client:
        yield client


@pytest.fixture
def remote_brain(helper_config, embed_client, kv_client, pinecone_client, clock) -> BrainService:
    """Brain backed by the fake remote index."""
    return BrainService(helper_config=helper_config, embed_client=embed_client, kv_client=kv_client, rag_client=pinecone_client)
