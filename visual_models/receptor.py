# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: receptor.py — Photoreceptor spectral sensitivities.

Two kinds of receptor:
  - TemplateReceptor: visual-pigment template (Govardovskii et al. 2000,
    A1 chromophore, alpha + beta band) optionally filtered by an avian oil
    droplet (Hart & Vorobyev 2005).
  - TabulatedReceptor: measured sensitivity interpolated onto the grid.

Both return curves normalised to unit sum over the requested grid, so
catches of different receptors are comparable in magnitude.

Hybrid parameter API: parameters may be
passed as keywords, as a ``params`` dict, or both (keywords win), and
``self.params`` is the only place they are stored.

References:
    - Govardovskii, V. I. et al. (2000). "In search of the visual pigment
      template". Visual Neuroscience 17, 509-528.
    - Hart, N. S. & Vorobyev, M. (2005). "Modelling oil droplet absorption
      spectra and spectral sensitivities of bird cone photoreceptors".
      J. Comp. Physiol. A 191, 381-392.
"""

import numpy as np
from numba import njit
from typing import Dict, Optional, Tuple, Union, List

from clutch_errors import ConfigError
from .spectra import interpolate_onto

__all__ = [
    "OIL_DROPLET_MIDPOINTS",
    "govardovskii_a1",
    "oil_droplet_transmission",
    "Photoreceptor",
    "TemplateReceptor",
    "TabulatedReceptor",
]

# λmid = slope · λcut + offset, per droplet type (Hart & Vorobyev 2005)
OIL_DROPLET_MIDPOINTS: Dict[str, Tuple[float, float]] = {
    "C": (0.99, 24.38),
    "Y": (0.90, 70.03),
    "R": (0.99, 28.65),
    "P": (0.96, 33.57),
}


@njit(cache=True)
def govardovskii_a1(wavelength: np.ndarray, peak: float) -> np.ndarray:
    """
    A1 visual-pigment absorbance template, alpha plus beta band.

    Args:
        wavelength: Wavelength array in nanometers.
        peak: Wavelength of maximum alpha-band absorbance (nm).

    Returns:
        Absorbance normalised so the alpha band peaks near 1.
    """
    A = 69.7
    a = 0.8795 + 0.0459 * np.exp(-((peak - 300.0) ** 2) / 11940.0)
    B = 28.0
    b = 0.922
    C = -14.9
    c = 1.104
    D = 0.674

    x = peak / wavelength
    alpha = 1.0 / (np.exp(A * (a - x)) + np.exp(B * (b - x))
                   + np.exp(C * (c - x)) + D)

    beta_peak = 189.0 + 0.315 * peak
    beta_width = -40.5 + 0.195 * peak
    beta = 0.26 * np.exp(-(((wavelength - beta_peak) / beta_width) ** 2))
    return alpha + beta


def oil_droplet_transmission(
    wavelength: np.ndarray, lambda_cut: float, oil_type: str
) -> np.ndarray:
    """
    Oil droplet transmission, T = exp(-exp(-2.89·Bmid·(λ - λcut) + 1.08)).

    ``Bmid = 0.5 / (λmid - λcut)`` with λmid from the droplet type's
    linear relation to λcut.
    """
    if oil_type not in OIL_DROPLET_MIDPOINTS:
        raise ConfigError(
            f"Unknown oil droplet type '{oil_type}'. "
            f"Choose from: {list(OIL_DROPLET_MIDPOINTS.keys())}"
        )
    slope, offset = OIL_DROPLET_MIDPOINTS[oil_type]
    lambda_mid = slope * lambda_cut + offset
    b_mid = 0.5 / (lambda_mid - lambda_cut)
    wl = np.asarray(wavelength, dtype=np.float64)
    return np.exp(-np.exp(-2.89 * b_mid * (wl - lambda_cut) + 1.08))


class Photoreceptor:
    """
    Base class for photoreceptor sensitivity models.

    Subclasses override ``raw_sensitivity()``; ``sensitivity()`` handles
    grid conversion and unit-sum normalisation.

    Attributes:
        params : Dict[str, float]
            Receptor parameters (single source of truth).
    """

    def __init__(
        self,
        params: Optional[Dict[str, Union[float, int, str, None]]] = None,
        **kwargs: Union[float, int, str, None]
    ):
        merged = {**(params or {}), **kwargs}
        self.params: Dict[str, Union[float, str, None]] = {}
        for k, v in merged.items():
            if isinstance(v, (int, float, np.number)) and not isinstance(v, bool):
                self.params[k] = float(v)
            else:
                self.params[k] = v

    def _validate_params(
        self,
        required: Optional[List[str]] = None,
        optional: Optional[Dict[str, Union[float, str, None]]] = None
    ) -> None:
        """
        Check required parameters and fill defaults for optional ones.

        Raises:
            ConfigError: If a required parameter is missing.
        """
        if required:
            for param in required:
                if self.params.get(param) is None:
                    raise ConfigError(
                        f"Parameter '{param}' is required for {self.__class__.__name__}."
                    )
        if optional:
            for param, default in optional.items():
                self.params.setdefault(param, default)

    def raw_sensitivity(self, wavelength: np.ndarray) -> np.ndarray:
        """Override in subclass: un-normalised sensitivity on *wavelength*."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement raw_sensitivity()"
        )

    def sensitivity(self, wavelength: np.ndarray) -> np.ndarray:
        """Sensitivity on *wavelength*, normalised to unit sum."""
        wl = np.array(wavelength, dtype=np.float64)
        curve = np.clip(self.raw_sensitivity(wl), 0.0, None)
        total = curve.sum()
        if not np.isfinite(total) or total <= 0.0:
            raise ConfigError(
                f"{self!r} has no sensitivity inside "
                f"[{wl[0]:.1f}, {wl[-1]:.1f}] nm",
                stage="vismodel",
            )
        return curve / total

    def get_params(self) -> Dict[str, Union[float, str, None]]:
        return self.params.copy()

    def set_param(self, param_name: str, value: Union[float, int]) -> None:
        """Set a numeric parameter by name."""
        if not isinstance(value, (int, float, np.number)):
            raise TypeError(
                f"Parameter '{param_name}' must be numeric, got {type(value).__name__}"
            )
        self.params[param_name] = float(value)

    def __repr__(self) -> str:
        shown = ", ".join(f"{k}={v}" for k, v in self.params.items()
                          if v is not None)
        return f"{self.__class__.__name__}({shown})"


class TemplateReceptor(Photoreceptor):
    """
    Cone modelled from its pigment peak and optional oil droplet.

    Parameters:
        peak: Pigment λmax in nm (required, 300-700).
        oil: Droplet type 'C', 'Y', 'R' or 'P'; None for a transparent
             droplet or a rod.
        lambda_cut: Droplet cut-off wavelength (required when *oil* is set).

    Examples:
        lws = TemplateReceptor(peak=605, oil="R", lambda_cut=567)
        uvs = TemplateReceptor(params={"peak": 372})
    """

    def __init__(
        self,
        peak: Optional[float] = None,
        oil: Optional[str] = None,
        lambda_cut: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int, str, None]]] = None,
        **kwargs: Union[float, int, str, None]
    ):
        p = dict(params) if params else {}
        if peak is not None:
            p["peak"] = peak
        if oil is not None:
            p["oil"] = oil
        if lambda_cut is not None:
            p["lambda_cut"] = lambda_cut
        p.update(kwargs)
        super().__init__(params=p)

        self._validate_params(required=["peak"],
                              optional={"oil": None, "lambda_cut": None})
        if not (300.0 <= self.params["peak"] <= 700.0):
            raise ConfigError(
                f"pigment peak must lie in [300, 700] nm, got {self.params['peak']}"
            )
        if self.params["oil"] is not None:
            if self.params["oil"] not in OIL_DROPLET_MIDPOINTS:
                raise ConfigError(f"Unknown oil droplet type '{self.params['oil']}'")
            self._validate_params(required=["lambda_cut"])

    @property
    def peak(self) -> float:
        return self.params["peak"]

    def raw_sensitivity(self, wavelength: np.ndarray) -> np.ndarray:
        curve = govardovskii_a1(wavelength, float(self.params["peak"]))
        if self.params["oil"] is not None:
            curve = curve * oil_droplet_transmission(
                wavelength, float(self.params["lambda_cut"]), self.params["oil"]
            )
        return curve


class TabulatedReceptor(Photoreceptor):
    """
    Receptor with measured sensitivity data.

    Parameters:
        data: 2-element tuple of (wavelength_array, sensitivity_array).
        interpolation_type: 'linear', 'cubicspline', 'pchip', 'akima' or
            'makima'.
        factor: Scaling factor applied before normalisation (default 1.0).
    """

    def __init__(
        self,
        data: Tuple[np.ndarray, np.ndarray],
        interpolation_type: str = "linear",
        factor: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if factor is not None:
            p["factor"] = factor
        p.update(kwargs)
        super().__init__(params=p)
        self._validate_params(optional={"factor": 1.0})

        wl = np.asarray(data[0], dtype=np.float64)
        vals = np.asarray(data[1], dtype=np.float64)
        if wl.shape != vals.shape or wl.ndim != 1 or wl.size < 2:
            raise ConfigError(
                "tabulated sensitivity must be two 1-D arrays of equal length >= 2"
            )
        self.data = (wl, vals)
        self.interpolation_type = interpolation_type

    def raw_sensitivity(self, wavelength: np.ndarray) -> np.ndarray:
        # Exact grid: no interpolation error
        wl, vals = self.data
        if wl.shape == wavelength.shape and np.array_equal(wl, wavelength):
            return self.params["factor"] * vals
        return self.params["factor"] * interpolate_onto(
            wavelength, self.data, self.interpolation_type
        )
