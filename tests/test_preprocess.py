# -*- coding: utf-8 -*-
"""Tests for LOESS smoothing, negative correction and normalisation."""

import numpy as np
import pytest

from clutch_errors import ConfigError, ValidationError
from clutch_preprocess import (
    ProcessingConfig,
    fix_negative,
    normalize,
    process_spectra,
    smooth,
)
from clutch_spectraldata import ReflectanceSet, ReflectanceSpectrum


def _set(wl, *rows):
    return ReflectanceSet(wl, np.vstack(rows), [f"s{i}" for i in range(len(rows))])


# ============================================================
# smooth
# ============================================================

class TestSmooth:
    def test_preserves_shape_ids_and_grid(self, egg_set):
        out = smooth(egg_set, span=0.25)
        assert out.values.shape == egg_set.values.shape
        assert out.sample_ids == egg_set.sample_ids
        np.testing.assert_array_equal(out.wavelength, egg_set.wavelength)

    def test_quadratic_passes_unchanged(self, wavelength):
        y = 1e-4 * (wavelength - 500.0) ** 2 + 0.02 * wavelength + 3.0
        out = smooth(_set(wavelength, y), span=0.2)
        np.testing.assert_allclose(out.values[0], y, rtol=1e-8, atol=1e-8)

    def test_constant_passes_unchanged(self, wavelength):
        y = np.full_like(wavelength, 7.5)
        out = smooth(_set(wavelength, y), span=0.5)
        np.testing.assert_allclose(out.values[0], y, rtol=1e-10)

    def test_irregular_grid(self):
        wl = np.array([300, 304, 311, 320, 322, 335, 341, 350, 362, 370], dtype=float)
        y = 0.5 * wl - 40.0
        out = smooth(_set(wl, y), span=0.6)
        np.testing.assert_allclose(out.values[0], y, rtol=1e-8)

    def test_reduces_noise(self, wavelength):
        rng = np.random.default_rng(7)
        clean = 20.0 + 10.0 * np.sin(wavelength / 60.0)
        noisy = clean + rng.normal(0.0, 1.0, wavelength.size)
        out = smooth(_set(wavelength, noisy), span=0.3)
        assert np.std(out.values[0] - clean) < 0.7 * np.std(noisy - clean)

    def test_accepts_iterable_of_spectra(self, wavelength):
        specs = [ReflectanceSpectrum(f"s{i}", wavelength, np.full_like(wavelength, i + 1.0))
                 for i in range(2)]
        out = smooth(specs, span=0.3)
        assert out.sample_ids == ("s0", "s1")

    @pytest.mark.parametrize("span", [0.0, -0.1, 1.5])
    def test_span_out_of_range(self, egg_set, span):
        with pytest.raises(ConfigError):
            smooth(egg_set, span=span)

    def test_span_too_narrow(self, wavelength):
        with pytest.raises(ConfigError) as exc:
            smooth(_set(wavelength, np.ones_like(wavelength)), span=0.01)
        assert exc.value.stage == "preprocess"

    def test_non_finite_values_named(self, wavelength):
        bad = np.ones_like(wavelength)
        bad[3] = np.nan
        rset = ReflectanceSet(wavelength, np.vstack([np.ones_like(wavelength), bad]),
                              ["good", "broken"])
        with pytest.raises(ValidationError) as exc:
            smooth(rset)
        assert exc.value.sample_ids == ("broken",)


# ============================================================
# fix_negative / normalize
# ============================================================

class TestFixNegative:
    def test_zero_clamps_only_negatives(self):
        wl = np.array([400.0, 450.0, 500.0, 550.0])
        out = fix_negative(_set(wl, np.array([-1.0, 0.0, 2.0, -0.5])))
        np.testing.assert_array_equal(out.values[0], [0.0, 0.0, 2.0, 0.0])

    def test_addmin_shifts_by_minimum(self):
        wl = np.array([400.0, 450.0, 500.0])
        out = fix_negative(_set(wl, np.array([-2.0, 1.0, 3.0]),
                                np.array([1.0, 2.0, 3.0])), "addmin")
        np.testing.assert_array_equal(out.values[0], [0.0, 3.0, 5.0])
        np.testing.assert_array_equal(out.values[1], [1.0, 2.0, 3.0])

    def test_unknown_method(self, egg_set):
        with pytest.raises(ConfigError):
            fix_negative(egg_set, "clip")


class TestNormalize:
    def test_maximum(self, egg_set):
        out = normalize(egg_set, "maximum")
        np.testing.assert_allclose(out.values.max(axis=1), 1.0)

    def test_sum(self, egg_set):
        out = normalize(egg_set, "sum")
        np.testing.assert_allclose(out.values.sum(axis=1), 1.0)

    def test_minimum(self, egg_set):
        out = normalize(egg_set, "minimum")
        np.testing.assert_allclose(out.values.min(axis=1), 0.0)

    def test_zero_spectrum_cannot_be_scaled(self):
        wl = np.array([400.0, 500.0, 600.0])
        with pytest.raises(ValidationError) as exc:
            normalize(_set(wl, np.ones(3), np.zeros(3)), "maximum")
        assert exc.value.sample_ids == ("s1",)


# ============================================================
# process_spectra
# ============================================================

class TestProcessSpectra:
    def test_negatives_after_smoothing_are_zero(self, wavelength):
        y = 3.0 * np.sin(wavelength / 25.0)
        rset = _set(wavelength, y, y + 1.0)
        smoothed = smooth(rset, span=0.1).values
        out = process_spectra(rset, ProcessingConfig(span=0.1)).values
        np.testing.assert_array_equal(out, np.where(smoothed < 0.0, 0.0, smoothed))
        assert np.all(out >= 0.0)
        assert out.shape == rset.values.shape

    def test_stages_can_be_disabled(self, egg_set):
        cfg = ProcessingConfig(smooth=False, fix_negative=None)
        out = process_spectra(egg_set, cfg)
        np.testing.assert_array_equal(out.values, egg_set.values)

    def test_normalize_runs_last(self, egg_set):
        out = process_spectra(egg_set, ProcessingConfig(normalize="maximum"))
        np.testing.assert_allclose(out.values.max(axis=1), 1.0)


class TestProcessingConfig:
    def test_defaults(self):
        cfg = ProcessingConfig()
        assert cfg.smooth and cfg.span == 0.25 and cfg.fix_negative == "zero"

    @pytest.mark.parametrize("kwargs", [
        {"span": 0.0},
        {"fix_negative": "abs"},
        {"normalize": "area"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            ProcessingConfig(**kwargs)
