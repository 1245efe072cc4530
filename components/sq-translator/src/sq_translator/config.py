"""Configuration for the structured query translator command line."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class TranslatorConfig:
    """Settings read from the environment.

    Attributes:
        mapping_path: JSON file with the concept mappings.
        concept_tree_path: JSON file with the concept hierarchy (optional).
        log_level: Name of the logging level, e.g. ``INFO``.
    """

    mapping_path: str | None = None
    concept_tree_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "TranslatorConfig":
        """Create TranslatorConfig from environment variables."""
        log_level = os.getenv("LOG_LEVEL", cls.log_level).strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            log_level = cls.log_level
        return cls(
            mapping_path=os.getenv("SQ_MAPPING_PATH") or None,
            concept_tree_path=os.getenv("SQ_CONCEPT_TREE_PATH") or None,
            log_level=log_level,
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)
