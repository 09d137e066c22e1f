# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_noise.py — Receptor-noise-limited (RNL) colour distances.

For two stimuli a, b and channel k the receptor contrast is

    Δf_k = ln(Q_k,a / Q_k,b)

and each channel carries noise e_k.  With ``n_k`` the relative receptor
density and ``w`` the Weber fraction of the reference channel r:

    neural:  e_k  = w · sqrt(n_r / n_k)
    photon:  e_k² = w² · n_r / n_k + 2 / (Q_k,a + Q_k,b)

The chromatic distance for n >= 2 channels is the noise-weighted norm of
the n-1 opponent contrasts u_a = Δf_a - Δf_n:

    ΔS² = uᵀ (D + e_n² 11ᵀ)⁻¹ u,     D = diag(e_1², ..., e_{n-1}²)

which reduces to the Vorobyev & Osorio (1998) closed forms for di-, tri-
and tetrachromats.  The kernel evaluates it with the Sherman-Morrison
identity, so no matrix is inverted per pair.

The achromatic distance uses a single channel:

    ΔL = |Δf_L| / e_L,   e_L = w_L  (neural)  or  sqrt(w_L² + 2/(Q_L,a + Q_L,b))

Distances are in JND units: 1.0 is the modelled discrimination threshold.

References:
    - Vorobyev, M. & Osorio, D. (1998). "Receptor noise as a determinant of
      colour thresholds". Proc. R. Soc. B 265, 351-358.
    - Siddiqi, A. et al. (2004). "Interspecific and intraspecific views of
      color signals: a tetrachromatic perspective". J. Exp. Biol. 207,
      2471-2485.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from numba import njit

from clutch_distances import (
    JNDDistanceMatrix,
    LUMINANCE_REFERENCE,
    NEUTRAL_REFERENCE,
    REFERENCE_PREFIX,
    reference_id,
)
from clutch_errors import ConfigError, ValidationError
from clutch_vismodel import QuantumCatchTable

__all__ = [
    "NOISE_TYPES",
    "NoiseModelConfig",
    "receptor_noise",
    "coldist",
]

logger = logging.getLogger(__name__)

NOISE_TYPES = ("neural", "photon")


# ---------------------------------------------------------------------------
# 1.  Configuration
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class NoiseModelConfig:
    """
    Receptor noise parameters.

    ``receptor_density_ratios`` lists one relative density per chromatic
    channel, in the visual system's channel order; the default is the
    1:2:2:4 ratio commonly used for birds.  ``weber_reference_channel`` is
    an index into that tuple (negative indices count from the end) and
    must be valid at construction.
    """
    noise_type:              str = "neural"
    include_achromatic:      bool = False
    receptor_density_ratios: Tuple[float, ...] = (1.0, 2.0, 2.0, 4.0)
    weber_fraction:          float = 0.1
    weber_reference_channel: int = -1
    weber_achromatic:        float = 0.1

    def __post_init__(self) -> None:
        if self.noise_type not in NOISE_TYPES:
            raise ConfigError(
                f"noise_type must be one of {NOISE_TYPES}, got '{self.noise_type}'",
                stage="noise",
            )
        ratios = tuple(float(r) for r in self.receptor_density_ratios)
        if len(ratios) < 2:
            raise ConfigError(
                "receptor_density_ratios needs at least two channels",
                stage="noise",
            )
        if not all(np.isfinite(r) and r > 0.0 for r in ratios):
            raise ConfigError(
                f"receptor densities must be positive, got {ratios}",
                stage="noise",
            )
        object.__setattr__(self, "receptor_density_ratios", ratios)

        n = len(ratios)
        ref = self.weber_reference_channel
        if isinstance(ref, bool) or not isinstance(ref, (int, np.integer)):
            raise ConfigError(
                f"weber_reference_channel must be an integer, got {ref!r}",
                stage="noise",
            )
        if not (-n <= ref < n):
            raise ConfigError(
                f"weber_reference_channel {ref} is out of range for "
                f"{n} channels",
                stage="noise",
            )
        object.__setattr__(self, "weber_reference_channel", int(ref))
        for label in ("weber_fraction", "weber_achromatic"):
            value = getattr(self, label)
            if not (np.isfinite(value) and value > 0.0):
                raise ConfigError(f"{label} must be positive, got {value}",
                                  stage="noise")
            object.__setattr__(self, label, float(value))

    @property
    def n_channels(self) -> int:
        return len(self.receptor_density_ratios)

    @property
    def reference_index(self) -> int:
        """``weber_reference_channel`` as a non-negative index."""
        return int(self.weber_reference_channel) % self.n_channels

    def to_dict(self) -> Dict[str, object]:
        return {
            "noise_type": self.noise_type,
            "include_achromatic": self.include_achromatic,
            "receptor_density_ratios": list(self.receptor_density_ratios),
            "weber_fraction": self.weber_fraction,
            "weber_reference_channel": self.weber_reference_channel,
            "weber_achromatic": self.weber_achromatic,
        }


def receptor_noise(config: NoiseModelConfig) -> np.ndarray:
    """Catch-independent noise e_k per chromatic channel."""
    n = np.asarray(config.receptor_density_ratios, dtype=np.float64)
    return config.weber_fraction * np.sqrt(n[config.reference_index] / n)


# ---------------------------------------------------------------------------
# 2.  Kernels
# ---------------------------------------------------------------------------
@njit(cache=True)
def _chromatic_kernel(
    q: np.ndarray,
    log_q: np.ndarray,
    e2: np.ndarray,
    photon: bool,
    pair_i: np.ndarray,
    pair_j: np.ndarray,
) -> np.ndarray:
    """ΔS for every listed pair; channel n-1 is the eliminated opponent."""
    n_pairs = pair_i.shape[0]
    n_ch = q.shape[1]
    last = n_ch - 1
    out = np.empty(n_pairs, dtype=np.float64)
    noise = np.empty(n_ch, dtype=np.float64)
    for p in range(n_pairs):
        a = pair_i[p]
        b = pair_j[p]
        for k in range(n_ch):
            noise[k] = e2[k]
            if photon:
                noise[k] += 2.0 / (q[a, k] + q[b, k])
        df_last = log_q[a, last] - log_q[b, last]
        quad = 0.0
        lin = 0.0
        inv = 0.0
        for k in range(last):
            u = (log_q[a, k] - log_q[b, k]) - df_last
            quad += u * u / noise[k]
            lin += u / noise[k]
            inv += 1.0 / noise[k]
        ds2 = quad - noise[last] * lin * lin / (1.0 + noise[last] * inv)
        out[p] = np.sqrt(ds2) if ds2 > 0.0 else 0.0
    return out


def _achromatic(
    q_lum: np.ndarray,
    pair_i: np.ndarray,
    pair_j: np.ndarray,
    config: NoiseModelConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    dl = np.log(q_lum[pair_i]) - np.log(q_lum[pair_j])
    e2 = np.full(dl.shape, config.weber_achromatic ** 2)
    if config.noise_type == "photon":
        e2 = e2 + 2.0 / (q_lum[pair_i] + q_lum[pair_j])
    return np.abs(dl) / np.sqrt(e2), dl


# ---------------------------------------------------------------------------
# 3.  Reference stimuli
# ---------------------------------------------------------------------------
def _reference_stimuli(
    catches: np.ndarray,
    achromatic: Optional[np.ndarray],
    channel_names: Tuple[str, ...],
    with_luminance: bool,
) -> Tuple[List[str], np.ndarray, Optional[np.ndarray]]:
    """
    Neutral point at the geometric-mean catch, and one stimulus per
    channel with that channel raised by a factor e.

    Every channel reference lies exactly one log unit from neutral along
    its own contrast axis, which is what orients the projected space.
    """
    neutral = np.exp(np.log(catches).mean(axis=0))
    n_ch = len(channel_names)
    ids = [NEUTRAL_REFERENCE] + [reference_id(c) for c in channel_names]
    block = np.tile(neutral, (n_ch + 1, 1))
    block[1 + np.arange(n_ch), np.arange(n_ch)] *= np.e

    lum: Optional[np.ndarray] = None
    if achromatic is not None:
        lum = np.full(n_ch + 1, np.exp(np.log(achromatic).mean()))
        if with_luminance:
            ids.append(LUMINANCE_REFERENCE)
            block = np.vstack([block, neutral])
            lum = np.append(lum, lum[0] * np.e)
    return ids, block, lum


# ---------------------------------------------------------------------------
# 4.  Distance calculator
# ---------------------------------------------------------------------------
def coldist(
    table: QuantumCatchTable,
    config: NoiseModelConfig,
    *,
    references: bool = True,
) -> JNDDistanceMatrix:
    """
    RNL distances between every unordered pair of samples in *table*.

    Args:
        table: Quantum catches of one group.
        config: Noise parameters; the density ratios must match the
            table's channels one to one.
        references: Append the neutral and per-channel reference stimuli
            used by ``clutch_projection.jnd2xyz`` to orient its axes.

    Returns:
        ``JNDDistanceMatrix`` with ``dS`` (and ``dL`` when
        ``config.include_achromatic``) for samples and references.

    Raises:
        ConfigError: Channel count mismatch, or achromatic distances
            requested from a table without achromatic catches.
        ValidationError: A catch is zero or negative, so its log contrast
            is undefined.
    """
    ids = tuple(table.sample_ids)
    if table.n_channels < 2:
        raise ConfigError(
            f"RNL distances need at least two chromatic channels, "
            f"got {table.n_channels}",
            stage="noise",
        )
    if config.n_channels != table.n_channels:
        raise ConfigError(
            f"{config.n_channels} receptor density ratios for "
            f"{table.n_channels} channels {table.channel_names}",
            stage="noise",
        )
    if config.include_achromatic and table.achromatic is None:
        raise ConfigError(
            "achromatic distances requested but the catches carry no "
            "achromatic channel",
            stage="noise",
        )
    if table.relative:
        warnings.warn(
            "relative quantum catches fed to the noise model; RNL distances "
            "assume absolute catches",
            UserWarning,
            stacklevel=2,
        )

    catches = np.asarray(table.catches, dtype=np.float64)
    bad = [sid for sid, row in zip(ids, catches) if np.any(row <= 0.0)]
    lum = None
    if config.include_achromatic:
        lum = np.asarray(table.achromatic, dtype=np.float64)
        bad += [sid for sid, v in zip(ids, lum) if v <= 0.0 and sid not in bad]
    if bad:
        raise ValidationError(
            "quantum catches must be positive to form log contrasts",
            stage="noise", sample_ids=bad,
        )

    patch_ids = list(ids)
    if references:
        clash = [sid for sid in ids if sid.startswith(REFERENCE_PREFIX)]
        if clash:
            raise ValidationError(
                f"sample ids may not start with '{REFERENCE_PREFIX}'",
                stage="noise", sample_ids=clash,
            )
        if len(ids) > 0:
            ref_ids, ref_q, ref_lum = _reference_stimuli(
                catches, lum, table.channel_names, config.include_achromatic)
            patch_ids += ref_ids
            catches = np.vstack([catches, ref_q])
            if lum is not None and ref_lum is not None:
                lum = np.concatenate([lum, ref_lum])

    n = len(patch_ids)
    pair_i, pair_j = np.triu_indices(n, k=1)
    log_q = np.log(catches)
    e = receptor_noise(config)
    logger.info("RNL distances (%s noise) for %d samples + %d references, "
                "%d pairs", config.noise_type, len(ids), n - len(ids),
                pair_i.size)
    logger.debug("channel noise e_k = %s", dict(zip(table.channel_names, e)))

    dS = _chromatic_kernel(
        catches, log_q, e ** 2, config.noise_type == "photon",
        pair_i.astype(np.int64), pair_j.astype(np.int64),
    )
    delta_f = log_q[pair_i] - log_q[pair_j]

    dL: Optional[np.ndarray] = None
    delta_l: Optional[np.ndarray] = None
    if lum is not None:
        dL, delta_l = _achromatic(lum, pair_i, pair_j, config)

    metadata = {
        "noise": config.to_dict(),
        "relative": bool(table.relative),
        "references": bool(references),
    }
    return JNDDistanceMatrix(
        patch_ids,
        len(ids),
        table.channel_names,
        dS=dS,
        dL=dL,
        delta_f=delta_f,
        delta_l=delta_l,
        group=table.group,
        metadata=metadata,
    )
