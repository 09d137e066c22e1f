# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Receptor sensitivities, visual systems and the spectra (illuminant,
background, ocular transmission) a visual model is evaluated under.
"""

from .receptor import (
    Photoreceptor,
    TabulatedReceptor,
    TemplateReceptor,
    govardovskii_a1,
    oil_droplet_transmission,
)
from .spectra import IDEAL, SpectrumSource, interpolate_onto, resolve_spectrum
from .systems import VISUAL_SYSTEMS, VisualSystem, get_visual_system

__all__ = [
    "Photoreceptor",
    "TabulatedReceptor",
    "TemplateReceptor",
    "govardovskii_a1",
    "oil_droplet_transmission",
    "IDEAL",
    "SpectrumSource",
    "interpolate_onto",
    "resolve_spectrum",
    "VISUAL_SYSTEMS",
    "VisualSystem",
    "get_visual_system",
]
