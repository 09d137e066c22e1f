# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_vismodel.py — Reflectance to photoreceptor quantum catches.

For channel k of the visual system and sample reflectance R:

    Q_k = Σ_λ R(λ) · I(λ) · S_k(λ) · T(λ)

with illuminant I (times ``illuminant_scale``), unit-sum receptor
sensitivity S_k and ocular transmission T.  von Kries adaptation divides
every channel by the catch of the adaptation background B under the same
light:

    k_k = 1 / Σ_λ B(λ) · I(λ) · S_k(λ) · T(λ)

Catches stay in receptor-specific absolute units unless ``relative`` is
set, in which case the chromatic channels are divided by their sum.  The
noise model in ``clutch_noise`` needs absolute catches; relative ones are
accepted there with a warning.

The achromatic catch comes from a dedicated receptor of the visual
system (double cones for birds) and travels beside the chromatic vector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

import numpy as np
import pandas as pd

from clutch_errors import ConfigError, ValidationError
from clutch_spectraldata import ReflectanceSet, ReflectanceSpectrum
from visual_models import (
    SpectrumSource,
    VisualSystem,
    get_visual_system,
)
from visual_models.spectra import check_spectrum_source, resolve_spectrum

__all__ = [
    "VisualModelConfig",
    "QuantumCatchVector",
    "QuantumCatchTable",
    "quantum_catch",
    "vismodel",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 1.  Configuration
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class VisualModelConfig:
    """
    Every option the visual model recognises.

    ``visual_system`` may be a registered name ("avg.uv", "avg.v") or a
    ``VisualSystem``; names are resolved at construction so a typo fails
    immediately.  ``achromatic_channel`` names one of the system's
    achromatic receptors, or None to skip the achromatic catch.
    """
    visual_system:      Union[str, VisualSystem] = "avg.uv"
    illuminant:         SpectrumSource = "ideal"
    background:         SpectrumSource = "ideal"
    transmission:       SpectrumSource = "ideal"
    achromatic_channel: Optional[str] = "dc"
    adaptation:         bool = True
    relative:           bool = False
    illuminant_scale:   float = 1.0

    def __post_init__(self) -> None:
        system = self.visual_system
        if isinstance(system, str):
            system = get_visual_system(system)
        elif not isinstance(system, VisualSystem):
            raise ConfigError(
                f"visual_system must be a name or VisualSystem, got "
                f"{type(system).__name__}",
                stage="vismodel",
            )
        object.__setattr__(self, "visual_system", system)

        if (self.achromatic_channel is not None
                and self.achromatic_channel not in system.achromatic):
            raise ConfigError(
                f"achromatic channel '{self.achromatic_channel}' is not an "
                f"achromatic receptor of '{system.name}' "
                f"(available: {sorted(system.achromatic)})",
                stage="vismodel",
            )
        if not (np.isfinite(self.illuminant_scale) and self.illuminant_scale > 0.0):
            raise ConfigError(
                f"illuminant_scale must be positive, got {self.illuminant_scale}",
                stage="vismodel",
            )
        for label in ("illuminant", "background", "transmission"):
            check_spectrum_source(getattr(self, label), label)

    @property
    def system(self) -> VisualSystem:
        # Resolved in __post_init__
        return self.visual_system  # type: ignore[return-value]

    @property
    def channel_names(self) -> Tuple[str, ...]:
        return self.system.channel_names


# ---------------------------------------------------------------------------
# 2.  Results
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class QuantumCatchVector:
    """Catches of one sample, in the visual system's channel order."""
    sample_id:     str
    channel_names: Tuple[str, ...]
    catches:       np.ndarray
    achromatic:    Optional[float] = None

    def __getitem__(self, channel: str) -> float:
        return float(self.catches[self.channel_names.index(channel)])


@dataclass(slots=True, frozen=True)
class QuantumCatchTable:
    """Quantum catches of every sample of one reflectance set."""
    sample_ids:    Tuple[str, ...]
    channel_names: Tuple[str, ...]
    catches:       np.ndarray
    achromatic:    Optional[np.ndarray] = None
    relative:      bool = False
    group:         Optional[str] = None

    def __post_init__(self) -> None:
        if self.catches.shape != (len(self.sample_ids), len(self.channel_names)):
            raise ValidationError(
                f"catch block shape {self.catches.shape} does not match "
                f"{len(self.sample_ids)} samples x {len(self.channel_names)} channels",
                stage="vismodel", sample_ids=self.sample_ids,
            )
        if self.achromatic is not None and self.achromatic.shape != (len(self.sample_ids),):
            raise ValidationError(
                "achromatic catches do not match the sample count",
                stage="vismodel", sample_ids=self.sample_ids,
            )

    def __len__(self) -> int:
        return len(self.sample_ids)

    @property
    def n_channels(self) -> int:
        return len(self.channel_names)

    def vector(self, sample_id: str) -> QuantumCatchVector:
        i = self.sample_ids.index(sample_id)
        return QuantumCatchVector(
            sample_id=sample_id,
            channel_names=self.channel_names,
            catches=self.catches[i].copy(),
            achromatic=None if self.achromatic is None else float(self.achromatic[i]),
        )

    def vectors(self) -> Iterator[QuantumCatchVector]:
        for sid in self.sample_ids:
            yield self.vector(sid)

    def to_frame(self) -> pd.DataFrame:
        """One row per sample, one column per channel (plus ``lum``)."""
        df = pd.DataFrame(self.catches, index=list(self.sample_ids),
                          columns=list(self.channel_names))
        if self.achromatic is not None:
            df["lum"] = self.achromatic
        df.index.name = "sample_id"
        return df


# ---------------------------------------------------------------------------
# 3.  Transformer
# ---------------------------------------------------------------------------
def _catches(
    wavelength: np.ndarray,
    reflectance: np.ndarray,
    sample_ids: Tuple[str, ...],
    config: VisualModelConfig,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Core integration shared by the single-spectrum and set entry points."""
    system = config.system
    illum = resolve_spectrum(config.illuminant, wavelength, "illuminant")
    illum = illum * config.illuminant_scale
    trans = resolve_spectrum(config.transmission, wavelength, "transmission")
    bkg = resolve_spectrum(config.background, wavelength, "background")

    light = illum * trans
    weights = system.sensitivities(wavelength) * light[:, np.newaxis]
    q = reflectance @ weights

    q_lum: Optional[np.ndarray] = None
    w_lum: Optional[np.ndarray] = None
    if config.achromatic_channel is not None:
        w_lum = system.achromatic_sensitivity(config.achromatic_channel, wavelength) * light
        q_lum = reflectance @ w_lum

    if config.adaptation:
        k_bkg = bkg @ weights
        if np.any(k_bkg <= 0.0):
            dead = [n for n, k in zip(system.channel_names, k_bkg) if k <= 0.0]
            raise ConfigError(
                f"background catch is zero for channel(s) {dead}; von Kries "
                f"adaptation is undefined",
                stage="vismodel",
            )
        q = q / k_bkg
        if q_lum is not None and w_lum is not None:
            k_lum = float(bkg @ w_lum)
            if k_lum <= 0.0:
                raise ConfigError(
                    "background catch is zero for the achromatic receptor",
                    stage="vismodel",
                )
            q_lum = q_lum / k_lum

    if config.relative:
        totals = q.sum(axis=1, keepdims=True)
        dark = [sid for sid, t in zip(sample_ids, totals[:, 0]) if t <= 0.0]
        if dark:
            raise ValidationError(
                "cannot express catches relative to a zero total",
                stage="vismodel", sample_ids=dark,
            )
        q = q / totals

    bad = [sid for sid, row in zip(sample_ids, q) if not np.all(np.isfinite(row))]
    if q_lum is not None:
        bad += [sid for sid, v in zip(sample_ids, q_lum)
                if not np.isfinite(v) and sid not in bad]
    if bad:
        raise ValidationError("non-finite quantum catch", stage="vismodel",
                              sample_ids=bad)
    return q, q_lum


def quantum_catch(
    spectrum: ReflectanceSpectrum, config: VisualModelConfig
) -> QuantumCatchVector:
    """Quantum-catch vector of a single spectrum."""
    q, q_lum = _catches(
        spectrum.wavelengths,
        spectrum.values[np.newaxis, :],
        (spectrum.sample_id,),
        config,
    )
    return QuantumCatchVector(
        sample_id=spectrum.sample_id,
        channel_names=config.channel_names,
        catches=q[0],
        achromatic=None if q_lum is None else float(q_lum[0]),
    )


def vismodel(rset: ReflectanceSet, config: VisualModelConfig) -> QuantumCatchTable:
    """
    Quantum catches for every spectrum of *rset*.

    Returns:
        ``QuantumCatchTable`` in the set's sample order and the visual
        system's channel order.  Its ``group`` is the set's single group
        label when all samples share one.
    """
    logger.info("visual model '%s' on %d spectra (adaptation=%s, relative=%s, "
                "achromatic=%s)", config.system.name, len(rset),
                config.adaptation, config.relative, config.achromatic_channel)
    q, q_lum = _catches(rset.wavelength, rset.values, rset.sample_ids, config)
    groups = set(rset.groups)
    group = groups.pop() if len(groups) == 1 else None
    logger.debug("catch range per channel: %s",
                 {n: (float(q[:, k].min()), float(q[:, k].max()))
                  for k, n in enumerate(config.channel_names)})
    return QuantumCatchTable(
        sample_ids=rset.sample_ids,
        channel_names=config.channel_names,
        catches=q,
        achromatic=q_lum,
        relative=config.relative,
        group=group,
    )
