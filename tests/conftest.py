# -*- coding: utf-8 -*-
"""Shared fixtures: synthetic egg-patch spectra and catch tables."""

import numpy as np
import pandas as pd
import pytest

from clutch_spectraldata import ReflectanceSet
from clutch_vismodel import QuantumCatchTable

WAVELENGTH = np.arange(300.0, 701.0, 5.0)

# (base, amplitude, sigmoid midpoint, sigmoid width, blue-green bump)
_EGG_PARAMS = {
    "egg1_background": (8.0, 30.0, 560.0, 25.0, 6.0),
    "egg2_background": (10.0, 26.0, 575.0, 30.0, 12.0),
    "egg3_background": (6.0, 35.0, 545.0, 20.0, 2.0),
    "egg4_background": (12.0, 22.0, 590.0, 35.0, 9.0),
    "egg1_spot": (3.0, 12.0, 600.0, 20.0, 0.5),
    "egg2_spot": (4.0, 15.0, 620.0, 30.0, 1.0),
    "egg3_spot": (2.5, 10.0, 585.0, 15.0, 0.0),
    "egg4_spot": (5.0, 9.0, 610.0, 40.0, 2.0),
}


def egg_spectrum(wl, base, amp, mid, width, bump):
    return (base + amp / (1.0 + np.exp(-(wl - mid) / width))
            + bump * np.exp(-(((wl - 480.0) / 40.0) ** 2)))


def make_set(ids=None, wl=WAVELENGTH, groups=None):
    ids = list(ids or _EGG_PARAMS)
    values = np.vstack([egg_spectrum(wl, *_EGG_PARAMS[i]) for i in ids])
    return ReflectanceSet(wl, values, ids, groups)


@pytest.fixture
def wavelength():
    return WAVELENGTH.copy()


@pytest.fixture
def egg_set():
    ids = list(_EGG_PARAMS)
    groups = ["background" if "background" in i else "spot" for i in ids]
    return make_set(ids, groups=groups)


@pytest.fixture
def background_set():
    ids = [i for i in _EGG_PARAMS if "background" in i]
    return make_set(ids, groups=["background"] * len(ids))


@pytest.fixture
def tetra_table():
    """Absolute catches of four distinct patches, with achromatic catches."""
    catches = np.array([
        [0.21, 0.35, 0.52, 0.61],
        [0.18, 0.40, 0.47, 0.70],
        [0.25, 0.30, 0.58, 0.55],
        [0.15, 0.28, 0.44, 0.66],
    ])
    return QuantumCatchTable(
        sample_ids=("a", "b", "c", "d"),
        channel_names=("u", "s", "m", "l"),
        catches=catches,
        achromatic=np.array([0.50, 0.55, 0.47, 0.61]),
        group="background",
    )


@pytest.fixture
def reflectance_csv(tmp_path):
    """CSV in the input layout holding every synthetic sample."""
    data = {"wl": WAVELENGTH}
    for sid, params in _EGG_PARAMS.items():
        data[sid] = egg_spectrum(WAVELENGTH, *params)
    path = tmp_path / "eggs.csv"
    pd.DataFrame(data).to_csv(path, index=False)
    return path
