# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_spectraldata.py — Immutable reflectance containers.

  ReflectanceSpectrum
    One sample: a strictly increasing wavelength grid, the reflectance
    values on it, the sample id and an optional group label
    ("background", "spot", ...).

  ReflectanceSet
    Many spectra on one shared grid, stored as a single (n_samples, n_wl)
    block.  Read-only: every transformation returns a new set built with
    ``with_values`` or ``subset``.  Numpy buffers are flagged non-writeable
    so that a set handed to a later stage cannot be edited behind its back.
"""

from __future__ import annotations

from collections.abc import KeysView
from dataclasses import dataclass
from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeAlias,
)

import numpy as np
import numpy.typing as npt

from clutch_errors import ValidationError

__all__ = [
    "ArrayFloat",
    "ReflectanceSpectrum",
    "ReflectanceSet",
    "check_wavelength_grid",
]

ArrayFloat: TypeAlias = npt.NDArray[np.floating]


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.flags.writeable = False
    return out


def check_wavelength_grid(
    wavelengths: np.ndarray,
    *,
    stage: str = "input",
    sample_ids: Sequence[str] = (),
) -> None:
    """
    Validate a wavelength grid.

    Raises
    ------
    ValidationError
        If the grid is not 1-D, holds non-finite values, or is not strictly
        monotonically increasing.
    """
    if wavelengths.ndim != 1:
        raise ValidationError(
            f"wavelength grid must be 1-D, got shape {wavelengths.shape}",
            stage=stage, sample_ids=sample_ids,
        )
    if not np.all(np.isfinite(wavelengths)):
        raise ValidationError(
            "wavelength grid contains non-finite values",
            stage=stage, sample_ids=sample_ids,
        )
    if wavelengths.size > 1 and not np.all(np.diff(wavelengths) > 0):
        raise ValidationError(
            "wavelength grid must be strictly monotonically increasing",
            stage=stage, sample_ids=sample_ids,
        )


# =============================================================================
# 1.  ReflectanceSpectrum
# =============================================================================
@dataclass(slots=True, frozen=True)
class ReflectanceSpectrum:
    """One reflectance curve: value vs wavelength for a single sample."""
    sample_id:   str
    wavelengths: np.ndarray
    values:      np.ndarray
    group:       Optional[str] = None

    def __post_init__(self) -> None:
        wl = np.asarray(self.wavelengths, dtype=np.float64)
        val = np.asarray(self.values, dtype=np.float64)
        check_wavelength_grid(wl, sample_ids=(self.sample_id,))
        if val.shape != wl.shape:
            raise ValidationError(
                f"value length {val.shape} != wavelength length {wl.shape}",
                stage="input", sample_ids=(self.sample_id,),
            )
        # frozen dataclass: bypass __setattr__ to store the read-only copies
        object.__setattr__(self, "wavelengths", _frozen(wl))
        object.__setattr__(self, "values", _frozen(val))

    def __len__(self) -> int:
        return int(self.wavelengths.shape[0])

    def pairs(self) -> Iterator[Tuple[float, float]]:
        """Yields ``(wavelength, reflectance)`` in grid order."""
        for wl, val in zip(self.wavelengths, self.values):
            yield float(wl), float(val)


# =============================================================================
# 2.  ReflectanceSet
# =============================================================================
class ReflectanceSet:
    """
    Immutable mapping ``sample_id -> ReflectanceSpectrum`` on a shared grid.

    Read path
    ---------
    ``rset[sample_id]`` → ``ReflectanceSpectrum`` (built on demand),
    ``rset.values`` → the ``(n_samples, n_wl)`` block, ``rset.wavelength``
    → the grid.

    Write path
    ----------
    None.  ``with_values`` returns a new set on the same grid, ``subset``
    returns a new set restricted to a group.
    """

    __slots__ = ("_wavelength", "_values", "_ids", "_groups", "_index")

    def __init__(
        self,
        wavelength: np.ndarray,
        values: np.ndarray,
        sample_ids: Sequence[str],
        groups: Optional[Sequence[Optional[str]]] = None,
    ) -> None:
        wl = np.asarray(wavelength, dtype=np.float64)
        block = np.asarray(values, dtype=np.float64)
        ids = tuple(str(s) for s in sample_ids)

        check_wavelength_grid(wl, sample_ids=ids)
        if block.ndim == 1:
            block = block[np.newaxis, :]
        if block.ndim != 2 or block.shape[0] != len(ids):
            raise ValidationError(
                f"value block shape {block.shape} does not match "
                f"{len(ids)} sample ids",
                stage="input", sample_ids=ids,
            )
        if block.shape[1] != wl.shape[0]:
            raise ValidationError(
                f"value length {block.shape[1]} != wavelength length "
                f"{wl.shape[0]}",
                stage="input", sample_ids=ids,
            )
        if len(set(ids)) != len(ids):
            dupes = sorted({s for s in ids if ids.count(s) > 1})
            raise ValidationError(
                "duplicate sample ids", stage="input", sample_ids=dupes,
            )

        if groups is None:
            grp: Tuple[Optional[str], ...] = (None,) * len(ids)
        else:
            grp = tuple(groups)
            if len(grp) != len(ids):
                raise ValidationError(
                    f"{len(grp)} group labels for {len(ids)} samples",
                    stage="input", sample_ids=ids,
                )

        self._wavelength = _frozen(wl)
        self._values = _frozen(block)
        self._ids = ids
        self._groups = grp
        self._index: Dict[str, int] = {s: i for i, s in enumerate(ids)}

    # -- constructors ------------------------------------------------------
    @classmethod
    def from_spectra(
        cls,
        spectra: Iterable[ReflectanceSpectrum],
        *,
        stage: str = "input",
    ) -> "ReflectanceSet":
        """
        Assemble a set from individual spectra.

        The first spectrum defines the reference grid; every other spectrum
        must match it exactly.
        """
        items = list(spectra)
        if not items:
            raise ValidationError("cannot build a set from zero spectra",
                                  stage=stage)
        ref = items[0].wavelengths
        bad_len = [s.sample_id for s in items if len(s) != ref.shape[0]]
        if bad_len:
            raise ValidationError(
                f"grid length mismatch against reference grid of "
                f"{ref.shape[0]} points",
                stage=stage, sample_ids=bad_len,
            )
        bad_grid = [s.sample_id for s in items
                    if not np.array_equal(s.wavelengths, ref)]
        if bad_grid:
            raise ValidationError(
                "wavelength grid differs from the reference grid",
                stage=stage, sample_ids=bad_grid,
            )
        return cls(
            ref,
            np.vstack([s.values for s in items]),
            [s.sample_id for s in items],
            [s.group for s in items],
        )

    # -- read interface ----------------------------------------------------
    def __getitem__(self, sample_id: str) -> ReflectanceSpectrum:
        i = self._index[sample_id]
        return ReflectanceSpectrum(
            sample_id=sample_id,
            wavelengths=self._wavelength,
            values=self._values[i],
            group=self._groups[i],
        )

    def __contains__(self, sample_id: object) -> bool:
        return sample_id in self._index

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def keys(self) -> KeysView:
        return self._index.keys()

    def spectra(self) -> Iterator[ReflectanceSpectrum]:
        for sid in self._ids:
            yield self[sid]

    @property
    def wavelength(self) -> np.ndarray:
        """The shared wavelength grid (read-only)."""
        return self._wavelength

    @property
    def values(self) -> np.ndarray:
        """Reflectance block of shape ``(n_samples, n_wl)`` (read-only)."""
        return self._values

    @property
    def sample_ids(self) -> Tuple[str, ...]:
        return self._ids

    @property
    def groups(self) -> Tuple[Optional[str], ...]:
        return self._groups

    @property
    def group_names(self) -> List[str]:
        """Distinct group labels in first-seen order (unlabelled excluded)."""
        seen: List[str] = []
        for g in self._groups:
            if g is not None and g not in seen:
                seen.append(g)
        return seen

    def group_of(self, sample_id: str) -> Optional[str]:
        return self._groups[self._index[sample_id]]

    # -- derivation --------------------------------------------------------
    def with_values(self, values: np.ndarray) -> "ReflectanceSet":
        """New set with the same grid, ids and groups but new values."""
        block = np.asarray(values, dtype=np.float64)
        if block.shape != self._values.shape:
            raise ValidationError(
                f"replacement block shape {block.shape} != {self._values.shape}",
                stage="input", sample_ids=self._ids,
            )
        return ReflectanceSet(self._wavelength, block, self._ids, self._groups)

    def subset(self, group: str) -> "ReflectanceSet":
        """
        Samples labelled *group*, or, for unlabelled samples, whose id
        contains *group* as a substring.
        """
        keep = [
            i for i, (sid, g) in enumerate(zip(self._ids, self._groups))
            if g == group or (g is None and group in sid)
        ]
        if not keep:
            raise ValidationError(f"no samples in group '{group}'",
                                  stage="input")
        return ReflectanceSet(
            self._wavelength,
            self._values[keep],
            [self._ids[i] for i in keep],
            [self._groups[i] for i in keep],
        )

    # -- display -----------------------------------------------------------
    def __repr__(self) -> str:
        n_wl = self._wavelength.shape[0]
        lo = float(self._wavelength[0]) if n_wl else float("nan")
        hi = float(self._wavelength[-1]) if n_wl else float("nan")
        return (
            f"ReflectanceSet(samples={len(self._ids)}, wl_points={n_wl}, "
            f"range=[{lo:.2f}, {hi:.2f}], groups={self.group_names})"
        )
