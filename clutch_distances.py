# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_distances.py — Pairwise JND distances of one group.

A ``JNDDistanceMatrix`` stores one entry per unordered pair of *patches*.
Patches are the group's samples followed by optional reference stimuli
(ids starting with ``ref.``) that the projector uses to orient its axes.
Self-pairs are never stored.

Per pair:
    dS       chromatic distance (JND)
    dL       achromatic distance (JND), when computed
    delta_f  receptor contrasts ln(Q_a / Q_b) per channel

``save`` / ``load`` round-trip the object bit-exactly through a numpy
``.npz`` archive; the long-format table from ``to_frame`` is for reading,
not for reconstruction.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from clutch_errors import ValidationError

__all__ = [
    "REFERENCE_PREFIX",
    "NEUTRAL_REFERENCE",
    "LUMINANCE_REFERENCE",
    "reference_id",
    "JNDDistanceMatrix",
]

REFERENCE_PREFIX = "ref."
NEUTRAL_REFERENCE = "ref.neutral"
LUMINANCE_REFERENCE = "ref.lum"

_FORMAT_VERSION = 1


def reference_id(channel: str) -> str:
    """Id of the reference stimulus that raises *channel* alone."""
    return f"{REFERENCE_PREFIX}{channel}"


def _frozen(arr: Optional[np.ndarray], dtype: Any = np.float64) -> Optional[np.ndarray]:
    if arr is None:
        return None
    out = np.array(arr, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


class JNDDistanceMatrix:
    """
    Symmetric JND distances over the unordered patch pairs of one group.

    Pairs are stored in ``np.triu_indices(n_patches, k=1)`` order.
    """

    __slots__ = (
        "_patch_ids", "_n_samples", "_channel_names", "_group",
        "_pair_i", "_pair_j", "_dS", "_dL", "_delta_f", "_delta_l",
        "_metadata", "_lookup", "_pos",
    )

    def __init__(
        self,
        patch_ids: Sequence[str],
        n_samples: int,
        channel_names: Sequence[str],
        dS: np.ndarray,
        dL: Optional[np.ndarray] = None,
        delta_f: Optional[np.ndarray] = None,
        delta_l: Optional[np.ndarray] = None,
        group: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ids = tuple(str(p) for p in patch_ids)
        n = len(ids)
        if len(set(ids)) != n:
            raise ValidationError("duplicate patch ids", stage="distance",
                                  sample_ids=ids)
        if not (0 <= n_samples <= n):
            raise ValidationError(
                f"n_samples={n_samples} outside [0, {n}]", stage="distance")
        n_pairs = n * (n - 1) // 2
        pair_i, pair_j = np.triu_indices(n, k=1)

        dS = np.asarray(dS, dtype=np.float64)
        if dS.shape != (n_pairs,):
            raise ValidationError(
                f"expected {n_pairs} chromatic distances, got {dS.shape}",
                stage="distance", sample_ids=ids)
        if np.any(dS < 0.0) or not np.all(np.isfinite(dS)):
            raise ValidationError("distances must be finite and non-negative",
                                  stage="distance", sample_ids=ids)
        if dL is not None:
            dL = np.asarray(dL, dtype=np.float64)
            if dL.shape != (n_pairs,) or np.any(dL < 0.0):
                raise ValidationError(
                    "achromatic distances must be one non-negative value per pair",
                    stage="distance", sample_ids=ids)
        if delta_f is not None:
            delta_f = np.asarray(delta_f, dtype=np.float64)
            if delta_f.shape != (n_pairs, len(channel_names)):
                raise ValidationError(
                    f"channel contrasts of shape {delta_f.shape} do not match "
                    f"{n_pairs} pairs x {len(channel_names)} channels",
                    stage="distance", sample_ids=ids)

        self._patch_ids = ids
        self._n_samples = int(n_samples)
        self._channel_names = tuple(channel_names)
        self._group = group
        self._pair_i = _frozen(pair_i, np.int64)
        self._pair_j = _frozen(pair_j, np.int64)
        self._dS = _frozen(dS)
        self._dL = _frozen(dL)
        self._delta_f = _frozen(delta_f)
        self._delta_l = _frozen(delta_l)
        self._metadata: Dict[str, Any] = dict(metadata or {})
        self._pos: Dict[str, int] = {p: k for k, p in enumerate(ids)}

        lookup = np.full((n, n), -1, dtype=np.int64)
        lookup[pair_i, pair_j] = np.arange(n_pairs)
        lookup[pair_j, pair_i] = np.arange(n_pairs)
        self._lookup = lookup

    # -- constructors ------------------------------------------------------
    @classmethod
    def from_square(
        cls,
        patch_ids: Sequence[str],
        dS: np.ndarray,
        dL: Optional[np.ndarray] = None,
        channel_names: Sequence[str] = (),
        n_samples: Optional[int] = None,
        group: Optional[str] = None,
        atol: float = 1e-9,
    ) -> "JNDDistanceMatrix":
        """
        Build from full square matrices.

        Patches whose id starts with ``ref.`` count as references; they must
        come after the samples unless *n_samples* is given.

        Raises:
            ValidationError: If a matrix is not square, not symmetric, or
                has a non-zero diagonal.
        """
        ids = tuple(str(p) for p in patch_ids)
        n = len(ids)
        squares = {"dS": np.asarray(dS, dtype=np.float64)}
        if dL is not None:
            squares["dL"] = np.asarray(dL, dtype=np.float64)
        for label, sq in squares.items():
            if sq.shape != (n, n):
                raise ValidationError(
                    f"{label} matrix of shape {sq.shape} for {n} patches",
                    stage="distance", sample_ids=ids)
            if not np.allclose(sq, sq.T, atol=atol):
                rows, cols = np.nonzero(~np.isclose(sq, sq.T, atol=atol))
                raise ValidationError(
                    f"{label} matrix is not symmetric", stage="distance",
                    sample_ids=(ids[rows[0]], ids[cols[0]]))
            if np.any(np.abs(np.diag(sq)) > atol):
                raise ValidationError(
                    f"{label} matrix has a non-zero diagonal", stage="distance",
                    sample_ids=ids)

        if n_samples is None:
            n_samples = sum(1 for p in ids if not p.startswith(REFERENCE_PREFIX))
            if any(p.startswith(REFERENCE_PREFIX) for p in ids[:n_samples]):
                raise ValidationError(
                    "reference patches must follow the samples", stage="distance",
                    sample_ids=ids)
        iu = np.triu_indices(n, k=1)
        return cls(
            ids, n_samples, channel_names,
            dS=squares["dS"][iu],
            dL=squares["dL"][iu] if "dL" in squares else None,
            group=group,
        )

    # -- read interface ----------------------------------------------------
    @property
    def patch_ids(self) -> Tuple[str, ...]:
        return self._patch_ids

    @property
    def sample_ids(self) -> Tuple[str, ...]:
        return self._patch_ids[:self._n_samples]

    @property
    def reference_ids(self) -> Tuple[str, ...]:
        return self._patch_ids[self._n_samples:]

    @property
    def n_samples(self) -> int:
        return self._n_samples

    @property
    def channel_names(self) -> Tuple[str, ...]:
        return self._channel_names

    @property
    def group(self) -> Optional[str]:
        return self._group

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self._metadata)

    @property
    def has_achromatic(self) -> bool:
        return self._dL is not None

    @property
    def dS(self) -> np.ndarray:
        return self._dS

    @property
    def dL(self) -> Optional[np.ndarray]:
        return self._dL

    @property
    def delta_f(self) -> Optional[np.ndarray]:
        return self._delta_f

    @property
    def delta_l(self) -> Optional[np.ndarray]:
        """Signed log achromatic contrast ``ln(L1) - ln(L2)`` per pair."""
        return self._delta_l

    @property
    def pair_indices(self) -> Tuple[np.ndarray, np.ndarray]:
        """Positions in ``patch_ids`` of the two patches of each pair."""
        return self._pair_i, self._pair_j

    def __len__(self) -> int:
        """Number of stored (unordered) pairs."""
        return int(self._dS.shape[0])

    def __contains__(self, patch_id: object) -> bool:
        return patch_id in self._pos

    def _pair_index(self, a: str, b: str) -> int:
        if a == b:
            raise ValueError(f"distance of '{a}' to itself is not stored")
        try:
            return int(self._lookup[self._pos[a], self._pos[b]])
        except KeyError as exc:
            raise KeyError(f"unknown patch {exc.args[0]!r}") from None

    def distance(self, a: str, b: str) -> float:
        """Chromatic JND distance between two patches (order-free)."""
        return float(self._dS[self._pair_index(a, b)])

    def achromatic_distance(self, a: str, b: str) -> Optional[float]:
        if self._dL is None:
            return None
        return float(self._dL[self._pair_index(a, b)])

    def __getitem__(self, pair: Tuple[str, str]) -> float:
        return self.distance(*pair)

    def pairs(
        self, include_references: bool = False
    ) -> Iterator[Tuple[str, str, float, Optional[float]]]:
        """Yields ``(patch1, patch2, dS, dL)`` in storage order."""
        ns = self._n_samples
        for k, (i, j) in enumerate(zip(self._pair_i, self._pair_j)):
            if not include_references and (i >= ns or j >= ns):
                continue
            dl = None if self._dL is None else float(self._dL[k])
            yield self._patch_ids[i], self._patch_ids[j], float(self._dS[k]), dl

    def to_square(
        self, include_references: bool = False, achromatic: bool = False
    ) -> Tuple[Tuple[str, ...], np.ndarray]:
        """Full symmetric matrix with a zero diagonal, plus its patch ids."""
        values = self._dL if achromatic else self._dS
        if values is None:
            raise ValueError("no achromatic distances were computed")
        n = len(self._patch_ids)
        sq = np.zeros((n, n), dtype=np.float64)
        sq[self._pair_i, self._pair_j] = values
        sq[self._pair_j, self._pair_i] = values
        if include_references:
            return self._patch_ids, sq
        ns = self._n_samples
        return self.sample_ids, sq[:ns, :ns].copy()

    def to_frame(self, include_references: bool = False) -> pd.DataFrame:
        """
        Long format: ``patch1, patch2, dS[, dL], d<channel>...``.

        Channel columns hold the receptor contrast ln(Q1/Q2).
        """
        ns = self._n_samples
        keep = np.ones(len(self), dtype=bool)
        if not include_references:
            keep = (self._pair_i < ns) & (self._pair_j < ns)
        ids = np.asarray(self._patch_ids, dtype=object)
        cols: Dict[str, Any] = {
            "patch1": ids[self._pair_i[keep]],
            "patch2": ids[self._pair_j[keep]],
            "dS": self._dS[keep],
        }
        if self._dL is not None:
            cols["dL"] = self._dL[keep]
        if self._delta_f is not None:
            for k, name in enumerate(self._channel_names):
                cols[f"d{name}"] = self._delta_f[keep, k]
        if self._delta_l is not None:
            cols["dlum"] = self._delta_l[keep]
        return pd.DataFrame(cols)

    # -- persistence -------------------------------------------------------
    def save(self, path: Union[str, Path]) -> Path:
        """Write a lossless ``.npz`` archive; returns the written path."""
        path = Path(path)
        if path.suffix != ".npz":
            path = path.with_suffix(".npz")
        header = {
            "format_version": _FORMAT_VERSION,
            "patch_ids": list(self._patch_ids),
            "n_samples": self._n_samples,
            "channel_names": list(self._channel_names),
            "group": self._group,
            "metadata": self._metadata,
        }
        arrays: Dict[str, np.ndarray] = {
            "header": np.array(json.dumps(header)),
            "dS": self._dS,
        }
        for name in ("dL", "delta_f", "delta_l"):
            value = getattr(self, f"_{name}")
            if value is not None:
                arrays[name] = value
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as fh:
            np.savez(fh, **arrays)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "JNDDistanceMatrix":
        with np.load(Path(path), allow_pickle=False) as archive:
            header = json.loads(str(archive["header"]))
            if header.get("format_version") != _FORMAT_VERSION:
                raise ValidationError(
                    f"unsupported distance archive version "
                    f"{header.get('format_version')!r}",
                    stage="distance",
                )
            opt = {name: archive[name] if name in archive.files else None
                   for name in ("dL", "delta_f", "delta_l")}
            return cls(
                header["patch_ids"],
                header["n_samples"],
                header["channel_names"],
                dS=archive["dS"],
                dL=opt["dL"],
                delta_f=opt["delta_f"],
                delta_l=opt["delta_l"],
                group=header["group"],
                metadata=header["metadata"],
            )

    # -- display -----------------------------------------------------------
    def __repr__(self) -> str:
        return (
            f"JNDDistanceMatrix(group={self._group!r}, samples={self._n_samples}, "
            f"references={len(self.reference_ids)}, pairs={len(self)}, "
            f"achromatic={self.has_achromatic})"
        )
