"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODERECALL__SECTION__KEY)
3. Repo YAML (.coderecall/config.yaml)
4. Global YAML (~/.config/coderecall/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODERECALL__<SECTION>__<KEY>=<VALUE>

Examples:
    CODERECALL__LOGGING__LEVEL=DEBUG
    CODERECALL__EMBEDDING__BACKEND=local
    CODERECALL__EMBEDDING__API_KEY=sk-...
    CODERECALL__VECTOR__URL=http://qdrant:6333
    CODERECALL__INDEXER__DEBOUNCE_SEC=1.5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

from coderecall.config.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_API_MODEL,
    DEFAULT_COLLECTION,
    DEFAULT_LOCAL_MODEL,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODERECALL__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG is verbose and may impact performance.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class EmbeddingConfig(BaseModel):
    """Embedding backend configuration.

    Env vars:
        CODERECALL__EMBEDDING__BACKEND: "api" (remote HTTP) or "local" (fastembed)
        CODERECALL__EMBEDDING__API_KEY: Bearer token for the remote provider
        CODERECALL__EMBEDDING__BASE_URL: OpenAI-compatible endpoint root
        CODERECALL__EMBEDDING__MODEL: Remote model id
        CODERECALL__EMBEDDING__LOCAL_MODEL: fastembed model name
        CODERECALL__EMBEDDING__DIMENSIONS: Override for models missing from the table
    """

    backend: Literal["api", "local"] = Field(
        default="api",
        description="Exactly one backend is active per gateway.",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Required for the api backend. Checked on first embed call.",
    )
    base_url: str = Field(
        default=DEFAULT_API_BASE_URL,
        description="OpenAI-compatible API root; requests go to {base_url}/embeddings.",
    )
    model: str = Field(
        default=DEFAULT_API_MODEL,
        description="Remote embedding model id.",
    )
    local_model: str = Field(
        default=DEFAULT_LOCAL_MODEL,
        description="Local ONNX model loaded through fastembed on first use.",
    )
    dimensions: int | None = Field(
        default=None,
        description="Vector length override. Needed only for models unknown to the "
        "built-in dimension table. RISK: must match what the model returns.",
    )
    max_retries: int = Field(
        default=3,
        description="Retries for transient provider failures (network, 429, 5xx).",
    )
    retry_base_delay_sec: float = Field(
        default=1.0,
        description="Base backoff delay; doubles on every retry.",
    )
    request_timeout_sec: float = Field(
        default=30.0,
        description="Per-request HTTP timeout.",
    )
    batch_size: int = Field(
        default=10,
        description="Texts per remote request. "
        "TRADEOFF: Larger batches are cheaper per call but fail as a unit.",
    )
    local_batch_size: int = Field(
        default=32,
        description="Texts per local inference batch.",
    )

    @field_validator("dimensions")
    @classmethod
    def validate_dimensions(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError(f"dimensions must be positive, got {v}")
        return v

    @field_validator("batch_size", "local_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"batch size must be >= 1, got {v}")
        return v


class VectorConfig(BaseModel):
    """Vector similarity index (Qdrant) configuration.

    Env vars:
        CODERECALL__VECTOR__URL: Qdrant server URL
        CODERECALL__VECTOR__LOCATION: Embedded mode location (":memory:" or a path)
        CODERECALL__VECTOR__API_KEY: Qdrant API key
        CODERECALL__VECTOR__COLLECTION: Collection name
    """

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL. Ignored when location is set.",
    )
    location: str | None = Field(
        default=None,
        description="Embedded Qdrant: ':memory:' or a directory path. No server needed.",
    )
    api_key: SecretStr | None = Field(default=None, description="Qdrant API key.")
    collection: str = Field(default=DEFAULT_COLLECTION, description="Collection name.")
    timeout_sec: int = Field(default=10, description="Qdrant request timeout.")
    hnsw_m: int = Field(
        default=16,
        description="HNSW graph degree. TRADEOFF: Higher = better recall, more memory.",
    )
    hnsw_ef_construct: int = Field(
        default=200,
        description="HNSW build-time candidate list size.",
    )
    indexing_threshold: int = Field(
        default=20000,
        description="Points before Qdrant builds the HNSW index for a segment.",
    )
    upsert_batch_size: int = Field(
        default=100,
        description="Points per upsert request during bulk writes.",
    )


class RetrievalConfig(BaseModel):
    """Example retrieval defaults.

    Env vars:
        CODERECALL__RETRIEVAL__TOP_K: Results per query
        CODERECALL__RETRIEVAL__THRESHOLD: Minimum cosine similarity
    """

    top_k: int = Field(default=3, description="Examples returned per query.")
    threshold: float = Field(
        default=0.6,
        description="Minimum similarity in [-1, 1]. "
        "TRADEOFF: Lower values admit loosely related examples into prompts.",
    )
    failure_window: int = Field(
        default=100,
        description="Most recent failures ranked in memory for failure lookups.",
    )
    preview_chars: int = Field(
        default=200,
        description="Code preview length in error-warning prompt blocks.",
    )


class IndexerConfig(BaseModel):
    """Codebase indexer configuration.

    Env vars:
        CODERECALL__INDEXER__ENABLED: Index on startup and watch for changes
        CODERECALL__INDEXER__DEBOUNCE_SEC: Quiet period before draining changes
        CODERECALL__INDEXER__BATCH_SIZE: Files indexed concurrently
        CODERECALL__INDEXER__MAX_FILE_SIZE_MB: Skip files larger than this
    """

    enabled: bool = Field(
        default=True,
        description="Run a full pass on startup and keep watching for changes.",
    )
    extensions: list[str] = Field(
        default_factory=lambda: [".py", ".ts", ".tsx", ".js", ".jsx"],
        description="Source file extensions to index.",
    )
    debounce_sec: float = Field(
        default=2.0,
        description="Every change notification restarts this window. "
        "Lower values may cause excessive reindexing during rapid edits.",
    )
    batch_size: int = Field(
        default=10,
        description="Files processed concurrently. "
        "RISK: High values multiply concurrent embedding requests.",
    )
    max_file_size_mb: int = Field(
        default=1,
        description="Skip files larger than this (MB).",
    )
    search_top_k: int = Field(default=5, description="Default chunk search result count.")
    search_threshold: float = Field(
        default=0.7,
        description="Default minimum similarity for chunk search.",
    )
    poll_interval_sec: float = Field(
        default=1.0,
        description="Polling interval for cross-filesystem mounts (WSL /mnt/*).",
    )

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in (e.lower() for e in v)]


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        CODERECALL__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        CODERECALL__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks. "
        "RISK: Too low causes failures under contention; too high delays errors.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class CodeRecallConfig(BaseModel):
    """Root configuration for CodeRecall.

    All settings can be configured via:
    1. Environment variables: CODERECALL__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    data_dir: str = Field(
        default=".coderecall",
        description="Data directory for the SQLite files. Relative paths resolve "
        "against the repository root.",
    )
