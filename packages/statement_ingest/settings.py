"""Tunable thresholds for reconciliation, duplicate detection and PDF extraction.

The defaults were chosen empirically against IDFC FIRST Bank exports; none of
them is a hard invariant, so every value can be overridden per call (pass a
``ParserSettings``) or per process through ``SI_<FIELD>`` environment
variables (see :meth:`ParserSettings.from_env`).
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_PREFIX = "SI_"


class ParserSettings(BaseModel):
    """Validated, immutable parser configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Reconciliation
    absolute_tolerance: Decimal = Field(default=Decimal("0.01"), ge=0)
    relative_tolerance: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    min_improvement: Decimal = Field(default=Decimal("1.00"), ge=0)
    max_corrections: int = Field(default=50, ge=0)

    # Duplicate detection
    duplicate_similarity: float = Field(default=0.85, ge=0.0, le=1.0)
    duplicate_amount_tolerance: Decimal = Field(default=Decimal("0.01"), ge=0)
    duplicate_day_window: int = Field(default=1, ge=0)
    min_token_length: int = Field(default=3, ge=1)

    # Extraction
    summary_search_rows: int = Field(default=30, ge=1)
    pdf_concurrency: int = Field(default=4, ge=1, le=32)
    pdf_pages_per_chunk: int = Field(default=2, ge=1)

    @field_validator("absolute_tolerance", "min_improvement", "duplicate_amount_tolerance")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"))

    @classmethod
    def from_env(cls, **overrides: Any) -> ParserSettings:
        """Build settings from ``SI_*`` environment variables plus ``overrides``.

        ``SI_MAX_CORRECTIONS=10`` sets ``max_corrections``; explicit keyword
        overrides win over the environment. Invalid values raise pydantic's
        ``ValidationError``.
        """

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        values.update(overrides)
        return cls.model_validate(values)


DEFAULT_SETTINGS = ParserSettings()


__all__ = ["ParserSettings", "DEFAULT_SETTINGS"]
