"""Centralised configuration for codeindex.

Load order (later sources override earlier ones):
  1. Built-in defaults
  2. ~/.codeindex/config.json
  3. .env file (via python-dotenv)
  4. Real environment variables

The embedding API key is deliberately not read here at import time; see
``get_api_key``.
"""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env first so real env vars still win over it
load_dotenv()

# ── defaults ──────────────────────────────────────────────────────────
_DEFAULTS = {
    "embedding_base_url": "https://api.mistral.ai/v1",
    "embedding_model": "codestral-embed",
    "embedding_timeout": "60",
    "batch_size": "10",  # Chunks per embedding request
    "max_file_size": str(100 * 1024),
    "chunk_size": "6000",  # Target ~1500-2000 tokens per chunk
    "max_embed_chars": "24000",  # codestral-embed max is 8192 tokens
    "index_db_path": os.path.join(".pi", "embeddings.db"),
}

# Environment variable holding the embedding provider credential
API_KEY_ENV = "MISTRAL_API_KEY"


# ── data directory (configurable via CODEINDEX_DATA_DIR) ──────────────
def _get_data_dir() -> Path:
    """Return the data directory, respecting CODEINDEX_DATA_DIR env var."""
    env_dir = os.environ.get("CODEINDEX_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".codeindex"


_config_dir = _get_data_dir()
_config_path = _config_dir / "config.json"

_file_cfg: dict = {}
if _config_path.is_file():
    try:
        _file_cfg = json.loads(_config_path.read_text(encoding="utf-8"))
        if not isinstance(_file_cfg, dict):
            _file_cfg = {}
    except (json.JSONDecodeError, OSError):
        _file_cfg = {}


def _get(key: str) -> str:
    """Return a config value using the load-order described above."""
    env_map = {
        "embedding_base_url": "EMBEDDING_BASE_URL",
        "embedding_model": "EMBEDDING_MODEL",
        "embedding_timeout": "EMBEDDING_TIMEOUT",
        "batch_size": "INDEX_BATCH_SIZE",
        "max_file_size": "INDEX_MAX_FILE_SIZE",
        "chunk_size": "INDEX_CHUNK_SIZE",
        "max_embed_chars": "MAX_EMBED_CHARS",
        "index_db_path": "INDEX_DB_PATH",
    }

    # 4) env var  (highest priority)
    env_name = env_map.get(key)
    if env_name:
        env_val = os.getenv(env_name)
        if env_val:  # non-empty string
            return env_val

    # 2) ~/.codeindex/config.json
    val = _file_cfg.get(key)
    if val is not None and str(val):
        return str(val)

    # 1) built-in default
    return _DEFAULTS[key]


# ── public constants ──────────────────────────────────────────────────
EMBEDDING_BASE_URL: str = _get("embedding_base_url")
EMBEDDING_MODEL: str = _get("embedding_model")
EMBEDDING_TIMEOUT: float = float(_get("embedding_timeout"))
BATCH_SIZE: int = int(_get("batch_size"))
MAX_FILE_SIZE: int = int(_get("max_file_size"))
CHUNK_SIZE: int = int(_get("chunk_size"))
MAX_EMBED_CHARS: int = int(_get("max_embed_chars"))


def get_api_key() -> str:
    """Return the embedding API key, or an empty string when unset.

    Read at call time so that a missing key only surfaces when an embedding
    is actually requested.
    """
    return os.getenv(API_KEY_ENV, "").strip()


def get_index_db_path(project_root: str | os.PathLike) -> Path:
    """Return the path of the index database for a project."""
    return Path(project_root) / _get("index_db_path")

