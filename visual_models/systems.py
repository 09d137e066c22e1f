# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: systems.py — Visual systems: ordered chromatic channels plus
dedicated achromatic receptors.

Built-in systems approximate the average ultraviolet-sensitive ("avg.uv")
and violet-sensitive ("avg.v") avian retina from published pigment peaks
and oil droplet cut-offs.  Supply measured curves through
``VisualSystem.from_arrays`` when the species is known.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from clutch_errors import ConfigError
from .receptor import Photoreceptor, TabulatedReceptor, TemplateReceptor

__all__ = [
    "VisualSystem",
    "VISUAL_SYSTEMS",
    "get_visual_system",
]


@dataclass(frozen=True, eq=False)
class VisualSystem:
    """
    A fixed, ordered set of chromatic receptors and the achromatic
    receptors that may be paired with them.

    Channel order is part of the identity: every quantum-catch vector
    derived from this system lists catches in ``channel_names`` order.
    """
    name:          str
    channel_names: Tuple[str, ...]
    receptors:     Tuple[Photoreceptor, ...]
    achromatic:    Mapping[str, Photoreceptor] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.channel_names) != len(self.receptors):
            raise ConfigError(
                f"visual system '{self.name}': {len(self.channel_names)} "
                f"channel names for {len(self.receptors)} receptors"
            )
        if len(set(self.channel_names)) != len(self.channel_names):
            raise ConfigError(f"visual system '{self.name}': duplicate channel names")
        if len(self.channel_names) < 2:
            raise ConfigError(
                f"visual system '{self.name}' needs at least two chromatic channels"
            )
        clash = set(self.channel_names) & set(self.achromatic)
        if clash:
            raise ConfigError(
                f"visual system '{self.name}': achromatic receptor(s) "
                f"{sorted(clash)} reuse chromatic channel names"
            )

    @property
    def n_channels(self) -> int:
        return len(self.channel_names)

    def sensitivities(self, wavelength: np.ndarray) -> np.ndarray:
        """Chromatic sensitivities, shape ``(n_wl, n_channels)``."""
        return np.column_stack([r.sensitivity(wavelength) for r in self.receptors])

    def achromatic_sensitivity(self, name: str, wavelength: np.ndarray) -> np.ndarray:
        if name not in self.achromatic:
            raise ConfigError(
                f"visual system '{self.name}' has no achromatic receptor "
                f"'{name}' (available: {sorted(self.achromatic)})",
                stage="vismodel",
            )
        return self.achromatic[name].sensitivity(wavelength)

    @classmethod
    def from_arrays(
        cls,
        name: str,
        wavelength: np.ndarray,
        sensitivities: np.ndarray,
        channel_names: Sequence[str],
        achromatic: Optional[Mapping[str, np.ndarray]] = None,
        interpolation_type: str = "linear",
    ) -> "VisualSystem":
        """
        Build a system from measured curves.

        Args:
            name: Label for logs and outputs.
            wavelength: Grid of the measurements (nm).
            sensitivities: Shape ``(n_wl, n_channels)``.
            channel_names: One name per column, short to long wavelength.
            achromatic: Optional mapping of receptor name to a curve on
                *wavelength*.
        """
        wl = np.asarray(wavelength, dtype=np.float64)
        sens = np.asarray(sensitivities, dtype=np.float64)
        if sens.ndim != 2 or sens.shape[0] != wl.shape[0]:
            raise ConfigError(
                f"sensitivities of shape {sens.shape} do not match a grid of "
                f"{wl.shape[0]} points"
            )
        receptors = tuple(
            TabulatedReceptor((wl, sens[:, k]), interpolation_type=interpolation_type)
            for k in range(sens.shape[1])
        )
        achro: Dict[str, Photoreceptor] = {
            key: TabulatedReceptor((wl, np.asarray(curve, dtype=np.float64)),
                                   interpolation_type=interpolation_type)
            for key, curve in (achromatic or {}).items()
        }
        return cls(name, tuple(channel_names), receptors, achro)


# Pigment peaks / droplet cut-offs (nm), averaged over published avian
# microspectrophotometry.
VISUAL_SYSTEMS: Dict[str, VisualSystem] = {
    "avg.uv": VisualSystem(
        name="avg.uv",
        channel_names=("u", "s", "m", "l"),
        receptors=(
            TemplateReceptor(peak=372),
            TemplateReceptor(peak=453, oil="C", lambda_cut=414),
            TemplateReceptor(peak=537, oil="Y", lambda_cut=511),
            TemplateReceptor(peak=605, oil="R", lambda_cut=567),
        ),
        achromatic={"dc": TemplateReceptor(peak=566, oil="P", lambda_cut=433)},
    ),
    "avg.v": VisualSystem(
        name="avg.v",
        channel_names=("v", "s", "m", "l"),
        receptors=(
            TemplateReceptor(peak=416),
            TemplateReceptor(peak=478, oil="C", lambda_cut=443),
            TemplateReceptor(peak=542, oil="Y", lambda_cut=507),
            TemplateReceptor(peak=607, oil="R", lambda_cut=570),
        ),
        achromatic={"dc": TemplateReceptor(peak=567, oil="P", lambda_cut=434)},
    ),
}


def get_visual_system(name: str) -> VisualSystem:
    try:
        return VISUAL_SYSTEMS[name]
    except KeyError:
        raise ConfigError(
            f"unknown visual system '{name}' (available: {sorted(VISUAL_SYSTEMS)})",
            stage="vismodel",
        ) from None
