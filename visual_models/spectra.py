# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spectra.py — Illuminant, background and ocular-transmission curves.

A spectrum source is one of:
  - ``"ideal"``: flat, unit power at every wavelength;
  - a 1-D array already sampled on the reflectance grid;
  - a ``(wavelengths, values)`` pair, interpolated onto the grid.
"""

from typing import Optional, Sequence, Tuple, Union

import numpy as np
from scipy.interpolate import Akima1DInterpolator, CubicSpline, PchipInterpolator

from clutch_errors import ConfigError

__all__ = [
    "SpectrumSource",
    "IDEAL",
    "interpolate_onto",
    "resolve_spectrum",
    "check_spectrum_source",
]

SpectrumSource = Union[str, np.ndarray, Sequence[float], Tuple[np.ndarray, np.ndarray]]

IDEAL = "ideal"


def interpolate_onto(
    wavelength: np.ndarray,
    data: Tuple[np.ndarray, np.ndarray],
    interpolation_type: str = "linear",
) -> np.ndarray:
    """
    Interpolate tabulated ``(wavelengths, values)`` onto *wavelength*.

    Args:
        wavelength: Target grid (nm).
        data: Tuple of (source wavelengths, source values).
        interpolation_type: 'linear', 'cubicspline', 'pchip', 'akima',
                            or 'makima'.

    Returns:
        Values at *wavelength*.  'linear' holds the end values outside
        the tabulated range; the spline methods extrapolate.
    """
    wvl = np.asarray(data[0], dtype=np.float64)
    vals = np.asarray(data[1], dtype=np.float64)
    if wvl.shape != vals.shape or wvl.ndim != 1:
        raise ConfigError(
            f"tabulated data shape mismatch: {wvl.shape} vs {vals.shape}"
        )

    methods = {
        "linear": lambda w, v: np.interp(wavelength, w, v),
        "cubicspline": lambda w, v: CubicSpline(
            w, v, extrapolate=True
        )(wavelength),
        "pchip": lambda w, v: PchipInterpolator(
            w, v, extrapolate=True
        )(wavelength),
        "akima": lambda w, v: Akima1DInterpolator(
            w, v, method="akima", extrapolate=True
        )(wavelength),
        "makima": lambda w, v: Akima1DInterpolator(
            w, v, method="makima", extrapolate=True
        )(wavelength),
    }
    if interpolation_type not in methods:
        raise ConfigError(
            f"Unknown interpolation type '{interpolation_type}'. "
            f"Choose from: {list(methods.keys())}"
        )
    order = np.argsort(wvl)
    return np.asarray(methods[interpolation_type](wvl[order], vals[order]),
                      dtype=np.float64)


def check_spectrum_source(source: SpectrumSource, label: str) -> None:
    """Grid-independent checks, run when a configuration is built."""
    if isinstance(source, str):
        if source != IDEAL:
            raise ConfigError(
                f"unknown {label} '{source}'; use '{IDEAL}' or supply data",
                stage="vismodel",
            )
        return
    if isinstance(source, tuple) and len(source) == 2:
        wl, vals = (np.asarray(a, dtype=np.float64) for a in source)
        if wl.shape != vals.shape or wl.ndim != 1 or wl.size < 2:
            raise ConfigError(
                f"{label}: tabulated (wavelengths, values) must be two 1-D "
                f"arrays of equal length >= 2",
                stage="vismodel",
            )
        arr = vals
    else:
        arr = np.asarray(source, dtype=np.float64)
        if arr.ndim != 1:
            raise ConfigError(f"{label} must be 1-D, got shape {arr.shape}",
                              stage="vismodel")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0.0):
        raise ConfigError(f"{label} must be finite and non-negative",
                          stage="vismodel")


def resolve_spectrum(
    source: Optional[SpectrumSource],
    wavelength: np.ndarray,
    label: str,
    interpolation_type: str = "linear",
) -> np.ndarray:
    """
    Sample a spectrum source on *wavelength*.

    Raises:
        ConfigError: If an array source does not match the grid length.
    """
    if source is None or (isinstance(source, str) and source == IDEAL):
        return np.ones_like(wavelength, dtype=np.float64)
    check_spectrum_source(source, label)
    if isinstance(source, tuple) and len(source) == 2:
        out = interpolate_onto(wavelength, source, interpolation_type)
        return np.clip(out, 0.0, None)
    arr = np.asarray(source, dtype=np.float64)
    if arr.shape != wavelength.shape:
        raise ConfigError(
            f"{label} has {arr.shape[0]} points but the reflectance grid "
            f"has {wavelength.shape[0]}",
            stage="vismodel",
        )
    return arr
