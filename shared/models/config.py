from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required by a backend client.

    Attributes:
        env_key (str): The raw key of the environment variable, without the
            client prefix (e.g. "BASE_URL" for "RAG_PINECONE_BASE_URL").
        val_type (str): The expected type of the value: "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Value used when the variable is not set.
            If None, the variable is required and reading it raises an error.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
