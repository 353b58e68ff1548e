"""Configuration constants.

Values here are not user-configurable: provider defaults, file names and
implementation limits. For configurable values, see models.py.
"""

# =============================================================================
# Embedding Defaults
# =============================================================================

DEFAULT_API_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_API_MODEL = "openai/text-embedding-3-small"
DEFAULT_LOCAL_MODEL = "BAAI/bge-small-en-v1.5"

CHARS_PER_TOKEN = 4
"""Token estimate divisor for backends that do not report usage."""

COST_PRECISION = 6
"""Decimal places kept in cost estimates."""

# =============================================================================
# Storage Layout
# =============================================================================

DEFAULT_COLLECTION = "code_examples"
EXAMPLES_DB_NAME = "code-examples.db"
CHUNKS_DB_NAME = "codebase-index.db"
CONFIG_FILE_NAME = "config.yaml"

# =============================================================================
# Sparse Vectors
# =============================================================================

SPARSE_VOCAB_SIZE = 100_000
"""Modulus applied to token hashes."""

SPARSE_MIN_TOKEN_LEN = 3
"""General tokens shorter than this are dropped."""

# =============================================================================
# Internal Implementation Constants
# =============================================================================

RECENT_ERRORS_LIMIT = 10
"""Recent failures listed in error statistics."""

PROGRESS_LOG_EVERY = 50
"""Full-pass progress is logged every N files."""
