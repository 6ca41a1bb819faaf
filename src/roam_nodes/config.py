"""Configuration module for roam-nodes."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from roam_nodes import __version__
from roam_nodes.services.sorting import SortKey
from roam_nodes.storage.node_query import AggregationStrategy

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the database
_USER_ENV = Path.home() / ".roam-nodes" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class RoamConfig(BaseModel):
    """Configuration for node retrieval and candidate display.

    Components never read this object implicitly: the entry point builds
    one and hands the relevant values to constructors. Tests and hosts that
    need different settings construct a new instance instead of mutating a
    shared one.
    """

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ROAM_BASE_DIR", "."))
    )
    # Knowledge-base root; stripped from file paths in display labels.
    # Relative values resolve against base_dir, then the working directory.
    directory: Path = Field(
        default_factory=lambda: Path(os.getenv("ROAM_DIRECTORY", "notes"))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ROAM_DATABASE_PATH", "data/db/roam.db")
        )
    )
    # Placeholder template such as "${title:*} ${tags:10}".
    # None selects the built-in layout.
    display_template: Optional[str] = Field(
        default_factory=lambda: os.getenv("ROAM_DISPLAY_TEMPLATE") or None
    )
    # Total label width used to resolve "*" fields
    display_width: int = Field(
        default_factory=lambda: int(os.getenv("ROAM_DISPLAY_WIDTH", "120"))
    )
    default_sort: SortKey = Field(
        default_factory=lambda: os.getenv("ROAM_DEFAULT_SORT", SortKey.FILE_MTIME.value)
    )
    aggregation_strategy: AggregationStrategy = Field(
        default_factory=lambda: os.getenv(
            "ROAM_AGGREGATION", AggregationStrategy.SUBQUERY.value
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("ROAM_SERVER_NAME", "roam-nodes"))
    server_version: str = Field(default=__version__)

    model_config = {"validate_default": True}

    @field_validator("display_width")
    @classmethod
    def validate_display_width(cls, v: int) -> int:
        """Reject widths that cannot hold a single character."""
        if v < 1:
            raise ValueError("display_width must be >= 1")
        return v

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_directory(self) -> Path:
        """Get the knowledge-base root as an absolute path.

        Node file paths are stored absolute, so a relative root (or base_dir)
        is anchored at the current working directory before it is stripped
        from labels.
        """
        return self.get_absolute_path(self.directory).absolute()

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Default instance for the command-line entry point
config = RoamConfig()
