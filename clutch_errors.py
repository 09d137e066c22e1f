# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_errors.py — Exception hierarchy shared by all stages.

Every error names the pipeline stage it was raised in and, where one
exists, the sample ids that triggered it.  All of them derive from
``ValueError`` so callers that only guard against bad input keep working.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

__all__ = [
    "ClutchError",
    "ValidationError",
    "ConfigError",
    "DegenerateInputError",
]


class ClutchError(ValueError):
    """Base class for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        sample_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self.stage: Optional[str] = stage
        self.sample_ids: Tuple[str, ...] = tuple(sample_ids or ())
        self.detail: str = message
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        parts.append(self.detail)
        if self.sample_ids:
            shown = ", ".join(self.sample_ids[:8])
            if len(self.sample_ids) > 8:
                shown += f", ... (+{len(self.sample_ids) - 8})"
            parts.append(f"(samples: {shown})")
        return " ".join(parts)


class ValidationError(ClutchError):
    """Malformed or inconsistent spectral input."""


class ConfigError(ClutchError):
    """Invalid model configuration."""


class DegenerateInputError(ClutchError):
    """Geometrically under-determined projection input."""
