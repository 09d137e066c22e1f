# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_projection.py — JND distances to Cartesian coordinates.

Pipeline:
    1. Embed the chromatic distances of all patches (samples and reference
       stimuli) in 3-D by classical scaling; refine the raw stress with
       L-BFGS-B when the distances are not exactly Euclidean.
    2. Fix the mirror ambiguity of the embedding from three channel
       references, so a tetrachromat's space always has the same handedness.
    3. Translate the chosen centre to the origin.
    4. Rotate so the reference points of two channels lie along two target
       directions (Gram-Schmidt on both frames).
    5. Embed the achromatic distances in 1-D for the luminance coordinate.

Under neural noise the RNL metric is Euclidean in the n-1 opponent
contrasts, so steps 1 and 5 are exact for up to four channels.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.linalg import eigh
from scipy.optimize import minimize

from clutch_distances import (
    JNDDistanceMatrix,
    LUMINANCE_REFERENCE,
    NEUTRAL_REFERENCE,
    reference_id,
)
from clutch_errors import ConfigError, DegenerateInputError

__all__ = [
    "ProjectionConfig",
    "JNDXYZPoint",
    "PerceptualSpace",
    "classical_mds",
    "stress",
    "jnd2xyz",
]

logger = logging.getLogger(__name__)

ChannelRef = Union[str, int]

CENTER_MODES = ("mean", "custom")
STRESS_WARNING = 0.05
_EXACT_STRESS = 1e-9


# ---------------------------------------------------------------------------
# 1.  Configuration
# ---------------------------------------------------------------------------
def _unit(vec: Sequence[float], label: str) -> np.ndarray:
    v = np.asarray(vec, dtype=np.float64)
    if v.shape != (3,) or not np.all(np.isfinite(v)):
        raise ConfigError(f"{label} must be three finite numbers, got {vec!r}",
                          stage="projection")
    norm = np.linalg.norm(v)
    if norm == 0.0:
        raise ConfigError(f"{label} must not be the zero vector",
                          stage="projection")
    return v / norm


@dataclass(slots=True, frozen=True)
class ProjectionConfig:
    """
    Options of ``jnd2xyz``.

    ``reference_channel_1`` / ``reference_channel_2`` name a chromatic
    channel, or index into the matrix's channel order (negative indices
    count from the end).  The defaults put the longwave reference on the
    x = y diagonal and the shortwave reference on +z.
    """
    rotate:              bool = True
    center:              bool = True
    center_mode:         str = "mean"
    center_patch:        Optional[str] = None
    reference_channel_1: ChannelRef = -1
    reference_channel_2: ChannelRef = 0
    target_axis_1:       Tuple[float, float, float] = (1.0, 1.0, 0.0)
    target_axis_2:       Tuple[float, float, float] = (0.0, 0.0, 1.0)

    def __post_init__(self) -> None:
        if self.center_mode not in CENTER_MODES:
            raise ConfigError(
                f"center_mode must be one of {CENTER_MODES}, got '{self.center_mode}'",
                stage="projection",
            )
        if self.center and self.center_mode == "custom" and not self.center_patch:
            raise ConfigError("center_mode 'custom' needs a center_patch",
                              stage="projection")
        a1 = _unit(self.target_axis_1, "target_axis_1")
        a2 = _unit(self.target_axis_2, "target_axis_2")
        if np.linalg.norm(np.cross(a1, a2)) < 1e-9:
            raise ConfigError("target_axis_1 and target_axis_2 are parallel",
                              stage="projection")
        object.__setattr__(self, "target_axis_1", tuple(float(x) for x in self.target_axis_1))
        object.__setattr__(self, "target_axis_2", tuple(float(x) for x in self.target_axis_2))
        for label in ("reference_channel_1", "reference_channel_2"):
            ref = getattr(self, label)
            if isinstance(ref, bool) or not isinstance(ref, (str, int, np.integer)):
                raise ConfigError(f"{label} must be a channel name or index, got {ref!r}",
                                  stage="projection")
            if not isinstance(ref, str):
                object.__setattr__(self, label, int(ref))
        if (type(self.reference_channel_1) is type(self.reference_channel_2)
                and self.reference_channel_1 == self.reference_channel_2):
            raise ConfigError("reference channels must differ", stage="projection")

    def target_frame(self) -> np.ndarray:
        """Orthonormal target basis as columns ``(t1, t2, t1 x t2)``."""
        return _frame(_unit(self.target_axis_1, "target_axis_1"),
                      _unit(self.target_axis_2, "target_axis_2"))


# ---------------------------------------------------------------------------
# 2.  Results
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class JNDXYZPoint:
    """One sample in perceptual space; coordinates in JND units."""
    sample_id: str
    x:         float
    y:         float
    z:         float
    luminance: Optional[float] = None

    @property
    def xyz(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z])


@dataclass(frozen=True)
class PerceptualSpace:
    """
    Projected samples of one group plus the reference points that mark
    the receptor axes (arrows for a 3-D renderer).
    """
    group:               Optional[str]
    points:              Tuple[JNDXYZPoint, ...]
    references:          Dict[str, np.ndarray] = field(default_factory=dict)
    reference_luminance: Dict[str, float] = field(default_factory=dict)
    stress:              float = 0.0
    rotation:            Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[JNDXYZPoint]:
        return iter(self.points)

    @property
    def sample_ids(self) -> Tuple[str, ...]:
        return tuple(p.sample_id for p in self.points)

    @property
    def coordinates(self) -> np.ndarray:
        """``(n_samples, 3)`` array in point order."""
        return np.array([[p.x, p.y, p.z] for p in self.points]).reshape(-1, 3)

    def point(self, sample_id: str) -> JNDXYZPoint:
        for p in self.points:
            if p.sample_id == sample_id:
                return p
        raise KeyError(sample_id)

    def to_frame(self, include_references: bool = False) -> pd.DataFrame:
        """Columns ``sample_id, x, y, z, lum``; lum is NaN when not computed."""
        rows = [(p.sample_id, p.x, p.y, p.z,
                 np.nan if p.luminance is None else p.luminance)
                for p in self.points]
        if include_references:
            rows += [(rid, *map(float, xyz), self.reference_luminance.get(rid, np.nan))
                     for rid, xyz in self.references.items()]
        return pd.DataFrame(rows, columns=["sample_id", "x", "y", "z", "lum"])


# ---------------------------------------------------------------------------
# 3.  Embedding
# ---------------------------------------------------------------------------
def classical_mds(distances: np.ndarray, n_dims: int = 3) -> np.ndarray:
    """
    Torgerson scaling of a square distance matrix.

    Negative eigenvalues (non-Euclidean residue) are clipped to zero, so
    the returned ``(n, n_dims)`` block is always real.
    """
    d = np.asarray(distances, dtype=np.float64)
    n = d.shape[0]
    j = np.eye(n) - np.full((n, n), 1.0 / n)
    b = -0.5 * j @ (d ** 2) @ j
    k = min(n_dims, n)
    vals, vecs = eigh(b, subset_by_index=[n - k, n - 1])
    order = np.argsort(vals)[::-1]
    vals = np.clip(vals[order], 0.0, None)
    coords = vecs[:, order] * np.sqrt(vals)
    if k < n_dims:
        coords = np.hstack([coords, np.zeros((n, n_dims - k))])
    return coords


def _pair_distances(coords: np.ndarray, i: np.ndarray, j: np.ndarray) -> np.ndarray:
    return np.linalg.norm(coords[i] - coords[j], axis=1)


def stress(coords: np.ndarray, distances: np.ndarray) -> float:
    """Kruskal stress-1 of *coords* against a square distance matrix."""
    i, j = np.triu_indices(distances.shape[0], k=1)
    target = distances[i, j]
    denom = float(np.sum(target ** 2))
    if denom == 0.0:
        return 0.0
    resid = _pair_distances(coords, i, j) - target
    return float(np.sqrt(np.sum(resid ** 2) / denom))


def _refine(coords: np.ndarray, distances: np.ndarray) -> np.ndarray:
    """Minimise raw stress from the classical start."""
    n, dims = coords.shape
    i, j = np.triu_indices(n, k=1)
    target = distances[i, j]

    def objective(flat: np.ndarray) -> Tuple[float, np.ndarray]:
        x = flat.reshape(n, dims)
        diff = x[i] - x[j]
        r = np.linalg.norm(diff, axis=1)
        resid = r - target
        safe = np.where(r > 0.0, r, 1.0)
        coeff = np.where(r > 0.0, 2.0 * resid / safe, 0.0)
        g_pair = coeff[:, np.newaxis] * diff
        grad = np.zeros_like(x)
        np.add.at(grad, i, g_pair)
        np.add.at(grad, j, -g_pair)
        return float(np.sum(resid ** 2)), grad.ravel()

    result = minimize(objective, coords.ravel(), jac=True, method="L-BFGS-B",
                      options={"maxiter": 1000})
    refined = result.x.reshape(n, dims)
    logger.debug("stress refinement: %s after %d iterations", result.message, result.nit)
    return refined if stress(refined, distances) < stress(coords, distances) else coords


def _check_metric(d: np.ndarray, ids: Sequence[str]) -> None:
    """Raise on the first triangle-inequality violation beyond tolerance."""
    tol = 1e-6 * max(1.0, float(d.max()))
    for k in range(d.shape[0]):
        viol = d > d[:, k:k + 1] + d[k:k + 1, :] + tol
        if viol.any():
            a, c = np.argwhere(viol)[0]
            raise DegenerateInputError(
                f"distances are not a metric: d({ids[a]}, {ids[c]}) = "
                f"{d[a, c]:.6g} > d({ids[a]}, {ids[k]}) + d({ids[k]}, {ids[c]}) = "
                f"{d[a, k] + d[k, c]:.6g}",
                stage="projection", sample_ids=(ids[a], ids[k], ids[c]),
            )


def _check_spread(points: np.ndarray, ids: Sequence[str]) -> None:
    sv = np.linalg.svd(points - points.mean(axis=0), compute_uv=False)
    if sv[0] <= 1e-12 or sv[1] <= 1e-8 * sv[0]:
        raise DegenerateInputError(
            "samples are collinear in perceptual space; the projection axes "
            "are undetermined",
            stage="projection", sample_ids=ids,
        )


# ---------------------------------------------------------------------------
# 4.  Orientation
# ---------------------------------------------------------------------------
def _frame(v1: np.ndarray, v2: np.ndarray) -> np.ndarray:
    s1 = v1 / np.linalg.norm(v1)
    w = v2 - np.dot(v2, s1) * s1
    s2 = w / np.linalg.norm(w)
    return np.column_stack([s1, s2, np.cross(s1, s2)])


def _channel_index(ref: ChannelRef, channel_names: Tuple[str, ...], label: str) -> int:
    n = len(channel_names)
    if isinstance(ref, str):
        if ref not in channel_names:
            raise ConfigError(
                f"{label} '{ref}' is not a channel of this matrix {channel_names}",
                stage="projection",
            )
        return channel_names.index(ref)
    if not (-n <= int(ref) < n):
        raise ConfigError(f"{label} {ref} is out of range for {n} channels",
                          stage="projection")
    return int(ref) % n


def _opponent_handedness(channels: Tuple[int, int, int], n_channels: int) -> float:
    """Sign of the reference triple's orientation in opponent-contrast space."""
    opp = np.hstack([np.eye(n_channels - 1), -np.ones((n_channels - 1, 1))])
    return float(np.sign(np.linalg.det(opp[:, list(channels)])))


def _fix_mirror(
    coords: np.ndarray, pos: Dict[str, int], channel_names: Tuple[str, ...],
    k1: int, k2: int,
) -> np.ndarray:
    if len(channel_names) != 4 or NEUTRAL_REFERENCE not in pos:
        return coords
    k3 = next(k for k in range(4) if k not in (k1, k2))
    refs = [reference_id(channel_names[k]) for k in (k1, k2, k3)]
    if not all(r in pos for r in refs):
        return coords
    origin = coords[pos[NEUTRAL_REFERENCE]]
    observed = np.linalg.det(np.stack([coords[pos[r]] - origin for r in refs]))
    if abs(observed) < 1e-12:
        return coords
    if np.sign(observed) != _opponent_handedness((k1, k2, k3), 4):
        logger.debug("mirroring embedding to restore channel handedness")
        coords = coords.copy()
        coords[:, 2] *= -1.0
    return coords


def _rotation(
    coords: np.ndarray, pos: Dict[str, int], ref1: str, ref2: str,
    config: ProjectionConfig,
) -> np.ndarray:
    missing = [r for r in (ref1, ref2) if r not in pos]
    if missing:
        raise DegenerateInputError(
            "reference stimuli needed for rotation are missing; compute the "
            "distances with references=True or disable rotate",
            stage="projection", sample_ids=missing,
        )
    v1, v2 = coords[pos[ref1]], coords[pos[ref2]]
    scale = max(1.0, float(np.abs(coords).max()))
    for rid, v in ((ref1, v1), (ref2, v2)):
        if np.linalg.norm(v) <= 1e-12 * scale:
            raise DegenerateInputError(
                "reference point coincides with the origin", stage="projection",
                sample_ids=(rid,),
            )
    if np.linalg.norm(np.cross(v1, v2)) <= 1e-9 * np.linalg.norm(v1) * np.linalg.norm(v2):
        raise DegenerateInputError("reference vectors are parallel",
                                   stage="projection", sample_ids=(ref1, ref2))
    return config.target_frame() @ _frame(v1, v2).T


def _luminance(
    matrix: JNDDistanceMatrix, pos: Dict[str, int], config: ProjectionConfig,
) -> Optional[np.ndarray]:
    if not matrix.has_achromatic:
        return None
    _, dl = matrix.to_square(include_references=True, achromatic=True)
    lum = classical_mds(dl, n_dims=1)[:, 0]
    if LUMINANCE_REFERENCE in pos and NEUTRAL_REFERENCE in pos:
        flip = lum[pos[LUMINANCE_REFERENCE]] < lum[pos[NEUTRAL_REFERENCE]]
    elif matrix.delta_l is not None and matrix.delta_l.size:
        # Brighter patch of the strongest contrast pair gets the larger value
        pair_i, pair_j = matrix.pair_indices
        k = int(np.argmax(np.abs(matrix.delta_l)))
        flip = (lum[pair_i[k]] - lum[pair_j[k]]) * matrix.delta_l[k] < 0.0
    else:
        flip = lum[np.argmax(np.abs(lum))] < 0.0
    if flip:
        lum = -lum
    if config.center:
        if config.center_mode == "mean":
            lum = lum - lum[:matrix.n_samples].mean()
        else:
            lum = lum - lum[pos[config.center_patch]]
    return lum


# ---------------------------------------------------------------------------
# 5.  Projector
# ---------------------------------------------------------------------------
def jnd2xyz(
    matrix: JNDDistanceMatrix, config: Optional[ProjectionConfig] = None
) -> PerceptualSpace:
    """
    Cartesian coordinates whose Euclidean distances reproduce *matrix*.

    Args:
        matrix: Distances of one group, with reference stimuli when
            ``config.rotate`` is set.
        config: Projection options; defaults to ``ProjectionConfig()``.

    Returns:
        ``PerceptualSpace`` with one ``JNDXYZPoint`` per sample, in the
        matrix's sample order.

    Raises:
        DegenerateInputError: Fewer than three samples, collinear samples,
            a non-metric matrix, or unusable reference points.
        ConfigError: Unknown reference channel or center patch.
    """
    config = config or ProjectionConfig()
    samples = matrix.sample_ids
    if len(samples) < 3:
        raise DegenerateInputError(
            f"projection needs at least 3 samples, got {len(samples)}",
            stage="projection", sample_ids=samples,
        )
    ids, d = matrix.to_square(include_references=True)
    pos = {p: k for k, p in enumerate(ids)}
    if config.center and config.center_mode == "custom" and config.center_patch not in pos:
        raise ConfigError(f"center_patch '{config.center_patch}' is not a patch "
                          f"of this matrix", stage="projection")
    k1 = k2 = None
    if config.rotate:
        if not matrix.reference_ids:
            raise DegenerateInputError(
                "rotation needs reference stimuli; compute the distances with "
                "references=True or disable rotate",
                stage="projection", sample_ids=samples,
            )
        k1 = _channel_index(config.reference_channel_1, matrix.channel_names,
                            "reference_channel_1")
        k2 = _channel_index(config.reference_channel_2, matrix.channel_names,
                            "reference_channel_2")
        if k1 == k2:
            raise ConfigError("reference channels resolve to the same channel",
                              stage="projection")

    _check_metric(d, ids)
    logger.info("projecting group %r: %d samples, %d references",
                matrix.group, len(samples), len(ids) - len(samples))

    coords = classical_mds(d)
    fit = stress(coords, d)
    if fit > _EXACT_STRESS:
        coords = _refine(coords, d)
        logger.debug("classical stress %.3g, refined %.3g", fit, stress(coords, d))
        fit = stress(coords, d)
    if fit > STRESS_WARNING:
        warnings.warn(
            f"projection stress {fit:.3f} for group {matrix.group!r}; 3-D "
            f"coordinates distort the JND distances",
            UserWarning,
            stacklevel=2,
        )
    _check_spread(coords[:len(samples)], samples)

    if k1 is not None and k2 is not None:
        coords = _fix_mirror(coords, pos, matrix.channel_names, k1, k2)

    if config.center:
        if config.center_mode == "mean":
            origin = coords[:len(samples)].mean(axis=0)
        else:
            origin = coords[pos[config.center_patch]]
        coords = coords - origin

    rotation = None
    if config.rotate and k1 is not None and k2 is not None:
        rotation = _rotation(
            coords, pos,
            reference_id(matrix.channel_names[k1]),
            reference_id(matrix.channel_names[k2]),
            config,
        )
        coords = coords @ rotation.T

    lum = _luminance(matrix, pos, config)
    points = tuple(
        JNDXYZPoint(
            sample_id=sid,
            x=float(coords[k, 0]),
            y=float(coords[k, 1]),
            z=float(coords[k, 2]),
            luminance=None if lum is None else float(lum[k]),
        )
        for k, sid in enumerate(samples)
    )
    refs = {rid: coords[pos[rid]].copy() for rid in matrix.reference_ids}
    ref_lum = {} if lum is None else {rid: float(lum[pos[rid]])
                                      for rid in matrix.reference_ids}
    return PerceptualSpace(
        group=matrix.group,
        points=points,
        references=refs,
        reference_luminance=ref_lum,
        stress=fit,
        rotation=rotation,
    )
