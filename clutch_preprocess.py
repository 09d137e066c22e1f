# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_preprocess.py — Smoothing and cleaning of reflectance spectra.

Smoothing is a local quadratic regression (LOESS) with tricube weights.
For every grid point the ``ceil(span * n)`` nearest grid points form the
neighbourhood; the farthest of them defines the bandwidth ``h`` and each
neighbour is weighted by ``(1 - (d/h)^3)^3``.  A weighted quadratic is
fitted in local coordinates and evaluated at the grid point, so
polynomials up to degree two pass through unchanged.

Negative correction runs after smoothing because smoothing can push
near-zero UV reflectance below zero.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Union

import numpy as np
from numba import njit

from clutch_errors import ConfigError, ValidationError
from clutch_spectraldata import (
    ReflectanceSet,
    ReflectanceSpectrum,
    check_wavelength_grid,
)

__all__ = [
    "ProcessingConfig",
    "smooth",
    "fix_negative",
    "normalize",
    "process_spectra",
]

logger = logging.getLogger(__name__)

NegativeFix = Literal["zero", "addmin"]
NormalizeMethod = Literal["maximum", "minimum", "sum"]

_MIN_WINDOW: int = 4


# ═══════════════════════════════════════════════════════════════════════════════
# Numba kernels
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def _intercept3(a, b):
    """First unknown of the 3x3 system a @ c = b (Cramer), plus a success flag."""
    det = (a[0, 0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
           - a[0, 1] * (a[1, 0] * a[2, 2] - a[1, 2] * a[2, 0])
           + a[0, 2] * (a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0]))
    if abs(det) < 1e-14:
        return 0.0, False
    x0 = (b[0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
          - a[0, 1] * (b[1] * a[2, 2] - a[1, 2] * b[2])
          + a[0, 2] * (b[1] * a[2, 1] - a[1, 1] * b[2])) / det
    return x0, True


@njit(cache=True)
def _loess_kernel(x, y, q):
    """
    Local quadratic LOESS over every row of *y*.

    Args:
        x: Strictly increasing grid, shape (n_wl,).
        y: Values, shape (n_samples, n_wl).
        q: Neighbourhood size (number of grid points, 4 <= q <= n_wl).

    Returns:
        Smoothed values with the shape of *y*.
    """
    n_samples, n = y.shape
    out = np.empty_like(y)
    w = np.empty(q)
    t = np.empty(q)
    a = np.empty((3, 3))
    b = np.empty(3)

    for i in range(n):
        xi = x[i]
        # Nearest-q window on a sorted grid
        lo = i - q // 2
        if lo < 0:
            lo = 0
        if lo > n - q:
            lo = n - q
        while lo > 0 and xi - x[lo - 1] < x[lo + q - 1] - xi:
            lo -= 1
        while lo + q < n and x[lo + q] - xi < xi - x[lo]:
            lo += 1

        h = max(xi - x[lo], x[lo + q - 1] - xi)
        for j in range(q):
            d = abs(x[lo + j] - xi) / h
            t[j] = (x[lo + j] - xi) / h
            w[j] = (1.0 - d * d * d) ** 3 if d < 1.0 else 0.0

        # Moments of the weighted design matrix [1, t, t^2]
        s0 = 0.0
        s1 = 0.0
        s2 = 0.0
        s3 = 0.0
        s4 = 0.0
        for j in range(q):
            tj = t[j]
            wj = w[j]
            s0 += wj
            s1 += wj * tj
            s2 += wj * tj * tj
            s3 += wj * tj * tj * tj
            s4 += wj * tj * tj * tj * tj
        a[0, 0] = s0
        a[0, 1] = s1
        a[0, 2] = s2
        a[1, 0] = s1
        a[1, 1] = s2
        a[1, 2] = s3
        a[2, 0] = s2
        a[2, 1] = s3
        a[2, 2] = s4

        for k in range(n_samples):
            b0 = 0.0
            b1 = 0.0
            b2 = 0.0
            for j in range(q):
                wy = w[j] * y[k, lo + j]
                b0 += wy
                b1 += wy * t[j]
                b2 += wy * t[j] * t[j]
            b[0] = b0
            b[1] = b1
            b[2] = b2
            # Intercept of the local fit is the smoothed value at xi
            c0, ok = _intercept3(a, b)
            if ok:
                out[k, i] = c0
            else:
                out[k, i] = b0 / s0 if s0 > 0.0 else y[k, i]

    return out


# ═══════════════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class ProcessingConfig:
    """Options for ``process_spectra``; every stage is explicit."""
    smooth:       bool = True
    span:         float = 0.25
    fix_negative: Optional[NegativeFix] = "zero"
    normalize:    Optional[NormalizeMethod] = None

    def __post_init__(self) -> None:
        if not (0.0 < self.span <= 1.0):
            raise ConfigError(f"span must lie in (0, 1], got {self.span}",
                              stage="preprocess")
        if self.fix_negative not in (None, "zero", "addmin"):
            raise ConfigError(
                f"unknown negative fix '{self.fix_negative}'",
                stage="preprocess",
            )
        if self.normalize not in (None, "maximum", "minimum", "sum"):
            raise ConfigError(
                f"unknown normalisation '{self.normalize}'",
                stage="preprocess",
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Operations
# ═══════════════════════════════════════════════════════════════════════════════

SpectraInput = Union[ReflectanceSet, Iterable[ReflectanceSpectrum]]


def _as_set(data: SpectraInput) -> ReflectanceSet:
    """Coerce input to a set and re-check the grid invariants."""
    if isinstance(data, ReflectanceSet):
        rset = data
    else:
        rset = ReflectanceSet.from_spectra(data, stage="preprocess")
    check_wavelength_grid(rset.wavelength, stage="preprocess",
                          sample_ids=rset.sample_ids)
    if rset.values.shape[1] != rset.wavelength.shape[0]:
        raise ValidationError(
            "grid length mismatch", stage="preprocess",
            sample_ids=rset.sample_ids,
        )
    bad = [sid for sid, row in zip(rset.sample_ids, rset.values)
           if not np.all(np.isfinite(row))]
    if bad:
        raise ValidationError("non-finite reflectance values",
                              stage="preprocess", sample_ids=bad)
    return rset


def smooth(data: SpectraInput, span: float = 0.25) -> ReflectanceSet:
    """
    LOESS-smooth every spectrum of the set.

    Args:
        data: Set (or iterable of spectra on one grid) to smooth.
        span: Neighbourhood as a fraction of the grid, in (0, 1].

    Returns:
        New set with the same ids, groups and grid.

    Raises:
        ConfigError: If *span* is outside (0, 1] or selects fewer than
            four grid points.
        ValidationError: If the grid is malformed.
    """
    rset = _as_set(data)
    if not (0.0 < span <= 1.0):
        raise ConfigError(f"span must lie in (0, 1], got {span}",
                          stage="preprocess")
    n_wl = rset.wavelength.shape[0]
    q = min(n_wl, int(math.ceil(span * n_wl)))
    if q < _MIN_WINDOW:
        raise ConfigError(
            f"span {span} selects {q} of {n_wl} grid points; "
            f"at least {_MIN_WINDOW} are needed for a local quadratic fit",
            stage="preprocess", sample_ids=rset.sample_ids,
        )
    logger.debug("smoothing %d spectra, window %d/%d points",
                 len(rset), q, n_wl)
    smoothed = _loess_kernel(
        np.array(rset.wavelength, dtype=np.float64),
        np.array(rset.values, dtype=np.float64),
        q,
    )
    return rset.with_values(smoothed)


def fix_negative(data: SpectraInput, method: NegativeFix = "zero") -> ReflectanceSet:
    """
    Remove negative reflectance.

    ``"zero"`` clamps every value below zero to exactly zero;
    ``"addmin"`` lifts each spectrum with a negative minimum by that
    minimum, keeping its shape.
    """
    rset = _as_set(data)
    vals = np.array(rset.values)
    if method == "zero":
        neg = vals < 0.0
        if np.any(neg):
            logger.debug("clamping %d negative values", int(neg.sum()))
        vals[neg] = 0.0
    elif method == "addmin":
        mins = vals.min(axis=1, keepdims=True)
        vals = vals - np.minimum(mins, 0.0)
    else:
        raise ConfigError(f"unknown negative fix '{method}'",
                          stage="preprocess")
    return rset.with_values(vals)


def normalize(data: SpectraInput, method: NormalizeMethod) -> ReflectanceSet:
    """Per-spectrum normalisation by maximum, minimum or sum."""
    rset = _as_set(data)
    vals = np.array(rset.values)
    if method == "minimum":
        return rset.with_values(vals - vals.min(axis=1, keepdims=True))

    if method == "maximum":
        denom = vals.max(axis=1, keepdims=True)
    elif method == "sum":
        denom = vals.sum(axis=1, keepdims=True)
    else:
        raise ConfigError(f"unknown normalisation '{method}'",
                          stage="preprocess")

    bad = [sid for sid, d in zip(rset.sample_ids, denom[:, 0]) if d <= 0.0]
    if bad:
        raise ValidationError(
            f"cannot normalise by {method}: non-positive denominator",
            stage="preprocess", sample_ids=bad,
        )
    return rset.with_values(vals / denom)


def process_spectra(data: SpectraInput, config: ProcessingConfig) -> ReflectanceSet:
    """Smooth, then fix negatives, then normalise, as *config* says."""
    rset = _as_set(data)
    logger.info("preprocessing %d spectra (smooth=%s, span=%.3g, "
                "fix_negative=%s, normalize=%s)",
                len(rset), config.smooth, config.span,
                config.fix_negative, config.normalize)
    if config.smooth:
        rset = smooth(rset, config.span)
    if config.fix_negative is not None:
        rset = fix_negative(rset, config.fix_negative)
    if config.normalize is not None:
        rset = normalize(rset, config.normalize)
    return rset
