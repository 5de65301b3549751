"""
Import settings.

Values come from the process environment, optionally pre-loaded from a
.env file with python-dotenv. Variables already set in the environment take
precedence over the file.

    TAXOKIT_BATCH_SIZE            rows per upsert call (default 50)
    TAXOKIT_MAX_WORKERS           concurrent chunks per upsert call (default 1)
    TAXOKIT_ROOT_SIMILARITY       root-tag fallback threshold, 0-1 (default 0.7)
    TAXOKIT_CHILD_SIMILARITY      child-tag fallback threshold, 0-1 (default 0.6)
    TAXOKIT_ADOPTION_SIMILARITY   orphan adoption threshold, 0-1 (default 0.5)
    TAXOKIT_CHAT_TYPE             scope for merge rules and audit logs (default "health")
    SUPABASE_DB_URL               Postgres connection string
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_WORKERS = 1
DEFAULT_ROOT_SIMILARITY = 0.7
DEFAULT_CHILD_SIMILARITY = 0.6
DEFAULT_ADOPTION_SIMILARITY = 0.5
DEFAULT_CHAT_TYPE = "health"


@dataclass
class ImportSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int = DEFAULT_MAX_WORKERS
    root_similarity: float = DEFAULT_ROOT_SIMILARITY
    child_similarity: float = DEFAULT_CHILD_SIMILARITY
    adoption_similarity: float = DEFAULT_ADOPTION_SIMILARITY
    chat_type: str = DEFAULT_CHAT_TYPE
    db_url: Optional[str] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"TAXOKIT_BATCH_SIZE must be >= 1, got {self.batch_size}")
        if self.max_workers < 1:
            raise ValueError(f"TAXOKIT_MAX_WORKERS must be >= 1, got {self.max_workers}")
        for name, value in (
            ("TAXOKIT_ROOT_SIMILARITY", self.root_similarity),
            ("TAXOKIT_CHILD_SIMILARITY", self.child_similarity),
            ("TAXOKIT_ADOPTION_SIMILARITY", self.adoption_similarity),
        ):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if not self.chat_type:
            raise ValueError("TAXOKIT_CHAT_TYPE must not be empty")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env_file: Optional[str] = None) -> ImportSettings:
    """
    Load settings from the environment.

    Args:
        env_file: .env file to load first. When omitted, a .env in the
            current directory is loaded if present.

    Returns:
        ImportSettings

    Raises:
        FileNotFoundError: If env_file is given but does not exist
        ValueError: If a variable cannot be parsed or is out of range
    """
    if env_file is not None:
        if not Path(env_file).exists():
            raise FileNotFoundError(f"Env file not found: {env_file}")
        load_dotenv(env_file)
        logger.info(f"Loaded environment variables from {env_file}")
    elif Path(".env").exists():
        load_dotenv(".env")

    return ImportSettings(
        batch_size=_env_int("TAXOKIT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        max_workers=_env_int("TAXOKIT_MAX_WORKERS", DEFAULT_MAX_WORKERS),
        root_similarity=_env_float("TAXOKIT_ROOT_SIMILARITY", DEFAULT_ROOT_SIMILARITY),
        child_similarity=_env_float("TAXOKIT_CHILD_SIMILARITY", DEFAULT_CHILD_SIMILARITY),
        adoption_similarity=_env_float("TAXOKIT_ADOPTION_SIMILARITY", DEFAULT_ADOPTION_SIMILARITY),
        chat_type=os.getenv("TAXOKIT_CHAT_TYPE", DEFAULT_CHAT_TYPE).strip(),
        db_url=os.getenv("SUPABASE_DB_URL") or None,
    )
