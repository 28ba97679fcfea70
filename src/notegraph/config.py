"""Configuration module for notegraph."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notegraph import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, shared by every checkout
_USER_ENV = Path.home() / ".notegraph" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotegraphConfig(BaseModel):
    """Configuration for the notegraph core."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEGRAPH_BASE_DIR", "."))
    )
    # Database configuration. An explicit URL wins over the file path.
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTEGRAPH_DATABASE_PATH", "data/db/notegraph.db")
        )
    )
    database_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("NOTEGRAPH_DATABASE_URL") or None
    )
    version: str = Field(default=__version__)

    # Graph traversal limits
    max_traversal_depth: int = Field(
        default_factory=lambda: int(os.getenv("NOTEGRAPH_MAX_TRAVERSAL_DEPTH", "20"))
    )
    shortest_path_max_hops: int = Field(
        default_factory=lambda: int(
            os.getenv("NOTEGRAPH_SHORTEST_PATH_MAX_HOPS", "10")
        )
    )
    # Parent chains longer than this are treated as corrupted data
    max_group_depth: int = Field(
        default_factory=lambda: int(os.getenv("NOTEGRAPH_MAX_GROUP_DEPTH", "1000"))
    )

    # Groups
    default_group_name: str = Field(
        default_factory=lambda: os.getenv("NOTEGRAPH_DEFAULT_GROUP_NAME", "Default")
    )
    default_group_description: str = Field(default="Default group for your notes")
    default_group_color: str = Field(default="#6c757d")
    default_group_icon: str = Field(default="fas fa-folder")
    default_group_own_icon: str = Field(default="fas fa-sticky-note")
    group_path_separator: str = Field(default=" > ")

    # Tags: when True, tags of every ancestor group are visible from a group
    inherit_ancestor_tags: bool = Field(
        default_factory=lambda: _env_bool("NOTEGRAPH_INHERIT_ANCESTOR_TAGS", "false")
    )

    # Graph views
    hub_count: int = Field(default=5)

    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTEGRAPH_LOG_LEVEL", "INFO")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEGRAPH_LOG_DIR"))
            if os.getenv("NOTEGRAPH_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotegraphConfig":
        """Reject limits that would disable traversal or the corruption guard."""
        if self.max_traversal_depth < 1:
            raise ValueError("max_traversal_depth must be >= 1")
        if self.shortest_path_max_hops < 1:
            raise ValueError("shortest_path_max_hops must be >= 1")
        if self.max_group_depth < 1:
            raise ValueError("max_group_depth must be >= 1")
        if self.max_traversal_depth > 100:
            logger.warning(
                "max_traversal_depth=%d is unusually high; traversals on dense "
                "graphs may become slow",
                self.max_traversal_depth,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL, creating the SQLite directory if needed."""
        if self.database_url:
            return self.database_url
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = NotegraphConfig()
