# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_io.py — Tabular reflectance input and CSV artifacts.

Input layout (one row per wavelength):

    wl,  egg1_background,  egg1_spot,  egg2_background, ...
    300, 4.21,             3.87,       5.02,            ...

The first column is the wavelength grid; every other column is one sample
and its name carries a group tag ("background", "spot", ...) as a
substring.  Outputs are plain CSV; the lossless distance-matrix artifact
is written by ``JNDDistanceMatrix.save``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from clutch_distances import JNDDistanceMatrix
from clutch_errors import ValidationError
from clutch_projection import PerceptualSpace
from clutch_spectraldata import ReflectanceSet

__all__ = [
    "group_tag",
    "read_reflectance",
    "write_reflectance",
    "write_distance_table",
    "write_xyz",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def group_tag(sample_id: str, groups: Sequence[str]) -> Optional[str]:
    """First tag of *groups* contained in *sample_id*, or None."""
    for tag in groups:
        if tag in sample_id:
            return tag
    return None


def read_reflectance(path: PathLike, groups: Sequence[str] = ()) -> ReflectanceSet:
    """
    Load a wavelength-by-sample CSV into a ``ReflectanceSet``.

    Args:
        path: CSV file; the first column holds wavelengths in nm.
        groups: Group tags matched against column names in order.

    Raises:
        ValidationError: Missing samples, non-numeric cells, or a grid that
            is not strictly increasing.
    """
    path = Path(path)
    df = pd.read_csv(path)
    if df.shape[1] < 2:
        raise ValidationError(f"{path.name}: expected a wavelength column and "
                              f"at least one sample column", stage="input")
    ids = [str(c).strip() for c in df.columns[1:]]
    numeric = df.apply(pd.to_numeric, errors="coerce")
    bad = [sid for sid, col in zip(ids, df.columns[1:])
           if numeric[col].isna().any()]
    if numeric.iloc[:, 0].isna().any():
        bad.insert(0, str(df.columns[0]))
    if bad:
        raise ValidationError(f"{path.name}: empty or non-numeric cells",
                              stage="input", sample_ids=bad)

    labels = [group_tag(sid, groups) for sid in ids] if groups else None
    if labels is not None:
        untagged = [sid for sid, g in zip(ids, labels) if g is None]
        if untagged:
            logger.warning("%d sample column(s) carry no group tag %s: %s",
                           len(untagged), list(groups), untagged)
    rset = ReflectanceSet(
        numeric.iloc[:, 0].to_numpy(dtype=np.float64),
        numeric.iloc[:, 1:].to_numpy(dtype=np.float64).T,
        ids,
        labels,
    )
    logger.info("read %s", rset)
    return rset


def write_reflectance(rset: ReflectanceSet, path: PathLike) -> Path:
    """Write *rset* back in the input layout (column ``wl`` first)."""
    path = Path(path)
    df = pd.DataFrame(rset.values.T, columns=list(rset.sample_ids))
    df.insert(0, "wl", rset.wavelength)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return path


def write_distance_table(
    matrix: JNDDistanceMatrix, path: PathLike, include_references: bool = False
) -> Path:
    """Long-format pair table: ``patch1, patch2, dS[, dL], d<channel>...``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    matrix.to_frame(include_references=include_references).to_csv(path, index=False)
    return path


def write_xyz(space: PerceptualSpace, path: PathLike, include_references: bool = False) -> Path:
    """Per-sample ``sample_id, x, y, z, lum`` table."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    space.to_frame(include_references=include_references).to_csv(path, index=False)
    return path
