"""Configuration module for Storm Notes."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from storm_notes import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the local database
_USER_ENV = Path.home() / ".storm" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


@dataclass(frozen=True)
class RankingSettings:
    """Tuned constants consumed by the pure ranking functions.

    None of these have a derivation behind them; they are defaults that can
    be overridden per call or through the environment.
    """

    recency_window_days: float = 30.0
    recency_weight: float = 0.2
    mmr_lambda: float = 0.92
    tag_bar_limit: Optional[int] = 50
    relatedness_threshold: float = 0.2
    related_overlap_weight: float = 5.0
    related_recency_weight: float = 0.5
    related_tag_count_weight: float = 0.1

    @property
    def recency_window_ms(self) -> float:
        return self.recency_window_days * 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class ContrastSettings:
    """Parameters of the darkening loop in the color engine."""

    target: float = 4.5
    lightness_step: float = 0.03
    saturation_step: float = 0.01
    max_iterations: int = 60


class StormConfig(BaseModel):
    """Configuration for Storm Notes."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("STORM_BASE_DIR", "."))
    )
    # Key-value database holding the note list and the tag color map
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("STORM_DATABASE_PATH", "data/db/storm.db")
        )
    )
    # When True, nothing is written to disk (useful for demos and tests)
    in_memory_store: bool = Field(
        default_factory=lambda: _env_bool("STORM_IN_MEMORY_STORE", "false")
    )
    notes_key: str = Field(default=os.getenv("STORM_NOTES_KEY", "storm_notes"))
    tag_colors_key: str = Field(
        default=os.getenv("STORM_TAG_COLORS_KEY", "storm_tag_colors")
    )
    # Writes arriving within this window are coalesced into one
    persist_debounce_ms: int = Field(
        default_factory=lambda: _env_int("STORM_PERSIST_DEBOUNCE_MS", "150")
    )
    seed_on_empty: bool = Field(
        default_factory=lambda: _env_bool("STORM_SEED_ON_EMPTY", "true")
    )

    # Ranking
    recency_window_days: float = Field(
        default_factory=lambda: _env_float("STORM_RECENCY_WINDOW_DAYS", "30")
    )
    recency_weight: float = Field(
        default_factory=lambda: _env_float("STORM_RECENCY_WEIGHT", "0.2")
    )
    mmr_lambda: float = Field(
        default_factory=lambda: _env_float("STORM_MMR_LAMBDA", "0.92")
    )
    # Cap on the diversified part of the tag bar; 0 disables the cap
    tag_bar_limit: int = Field(
        default_factory=lambda: _env_int("STORM_TAG_BAR_LIMIT", "50")
    )
    relatedness_threshold: float = Field(
        default_factory=lambda: _env_float("STORM_RELATEDNESS_THRESHOLD", "0.2")
    )
    related_overlap_weight: float = Field(
        default_factory=lambda: _env_float("STORM_RELATED_OVERLAP_WEIGHT", "5.0")
    )
    related_recency_weight: float = Field(
        default_factory=lambda: _env_float("STORM_RELATED_RECENCY_WEIGHT", "0.5")
    )
    related_tag_count_weight: float = Field(
        default_factory=lambda: _env_float("STORM_RELATED_TAG_COUNT_WEIGHT", "0.1")
    )

    # Color engine
    contrast_target: float = Field(
        default_factory=lambda: _env_float("STORM_CONTRAST_TARGET", "4.5")
    )
    contrast_step: float = Field(
        default_factory=lambda: _env_float("STORM_CONTRAST_STEP", "0.03")
    )
    contrast_saturation_step: float = Field(
        default_factory=lambda: _env_float("STORM_CONTRAST_SATURATION_STEP", "0.01")
    )
    contrast_max_iterations: int = Field(
        default_factory=lambda: _env_int("STORM_CONTRAST_MAX_ITERATIONS", "60")
    )

    # Server configuration
    server_name: str = Field(default=os.getenv("STORM_SERVER_NAME", "storm-notes"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_ranking_config(self) -> "StormConfig":
        """Reject values that would make the ranking functions meaningless."""
        if not 0.0 <= self.mmr_lambda <= 1.0:
            raise ValueError("mmr_lambda must be between 0 and 1")
        if self.recency_window_days <= 0:
            raise ValueError("recency_window_days must be > 0")
        if self.tag_bar_limit < 0:
            raise ValueError("tag_bar_limit must be >= 0")
        if self.persist_debounce_ms < 0:
            raise ValueError("persist_debounce_ms must be >= 0")
        if self.contrast_max_iterations < 1:
            raise ValueError("contrast_max_iterations must be >= 1")
        if self.contrast_step <= 0:
            raise ValueError("contrast_step must be > 0")
        if self.recency_weight < 0 or self.relatedness_threshold < 0:
            logger.warning(
                "Negative ranking weights (recency_weight=%s, "
                "relatedness_threshold=%s) invert the usual ordering.",
                self.recency_weight,
                self.relatedness_threshold,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_store:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def ranking_settings(self) -> RankingSettings:
        """Snapshot of the ranking constants for the pure ranking functions."""
        return RankingSettings(
            recency_window_days=self.recency_window_days,
            recency_weight=self.recency_weight,
            mmr_lambda=self.mmr_lambda,
            tag_bar_limit=self.tag_bar_limit or None,
            relatedness_threshold=self.relatedness_threshold,
            related_overlap_weight=self.related_overlap_weight,
            related_recency_weight=self.related_recency_weight,
            related_tag_count_weight=self.related_tag_count_weight,
        )

    def contrast_settings(self) -> ContrastSettings:
        """Snapshot of the contrast loop parameters."""
        return ContrastSettings(
            target=self.contrast_target,
            lightness_step=self.contrast_step,
            saturation_step=self.contrast_saturation_step,
            max_iterations=self.contrast_max_iterations,
        )


# Create a global config instance
config = StormConfig()
