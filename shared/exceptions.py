"""Error taxonomy for the brain retrieval engine.

BrainError subclasses are the expected failure modes. BrainService catches
them at its boundary and turns them into structured results. ClientRequestError
is raised by backend clients on non-2xx responses and is treated as an
infrastructure failure unless a more specific subclass applies.
"""


class BrainError(Exception):
    """Base class for all expected brain failures."""


class ValidationError(BrainError):
    """An entity is missing one of its required fields (id, content, type)."""


class NotFound(BrainError):
    """An operation addressed an id that does not exist."""

    def __init__(self, entity_id: str):
        super().__init__(f"Data with ID {entity_id} not found")
        self.entity_id = entity_id


class EmbeddingFailure(BrainError):
    """The embedding backend failed or returned no usable vector."""


class StoreCorruption(BrainError):
    """A stored payload could not be parsed into the expected shape."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Stored payload under '{key}' is corrupt: {reason}")
        self.key = key


class ClientRequestError(Exception):
    """A backend client received a non-2xx response."""

    def __init__(self, url: str, status_code: int, body: str):
        super().__init__(f"Request to {url} failed with status {status_code}: {body}")
        self.url = url
        self.status_code = status_code
        self.body = body


class RemoteIndexFailure(BrainError, ClientRequestError):
    """The remote vector index answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int, body: str):
        ClientRequestError.__init__(self, url=url, status_code=status_code, body=body)
