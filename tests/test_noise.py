# -*- coding: utf-8 -*-
"""Tests for the receptor-noise-limited distance calculator."""

import itertools

import numpy as np
import pytest

from clutch_distances import JNDDistanceMatrix
from clutch_errors import ConfigError, ValidationError
from clutch_noise import NoiseModelConfig, coldist, receptor_noise
from clutch_vismodel import QuantumCatchTable, VisualModelConfig, vismodel


def _table(catches, ids=None, channels=None, achromatic=None, relative=False):
    catches = np.asarray(catches, dtype=float)
    n, k = catches.shape
    return QuantumCatchTable(
        sample_ids=tuple(ids or (f"p{i}" for i in range(n))),
        channel_names=tuple(channels or "abcd"[:k]),
        catches=catches,
        achromatic=None if achromatic is None else np.asarray(achromatic, dtype=float),
        relative=relative,
    )


def _tri_closed_form(qa, qb, e):
    df = np.log(qa / qb)
    e1, e2, e3 = e
    num = (e1 ** 2 * (df[2] - df[1]) ** 2 + e2 ** 2 * (df[2] - df[0]) ** 2
           + e3 ** 2 * (df[0] - df[1]) ** 2)
    den = (e1 * e2) ** 2 + (e1 * e3) ** 2 + (e2 * e3) ** 2
    return np.sqrt(num / den)


def _tetra_closed_form(qa, qb, e):
    df = np.log(qa / qb)
    e1, e2, e3, e4 = e
    num = ((e1 * e2) ** 2 * (df[3] - df[2]) ** 2 + (e1 * e3) ** 2 * (df[3] - df[1]) ** 2
           + (e1 * e4) ** 2 * (df[2] - df[1]) ** 2 + (e2 * e3) ** 2 * (df[3] - df[0]) ** 2
           + (e2 * e4) ** 2 * (df[2] - df[0]) ** 2 + (e3 * e4) ** 2 * (df[1] - df[0]) ** 2)
    den = ((e1 * e2 * e3) ** 2 + (e1 * e2 * e4) ** 2
           + (e1 * e3 * e4) ** 2 + (e2 * e3 * e4) ** 2)
    return np.sqrt(num / den)


# ============================================================
# NoiseModelConfig
# ============================================================

class TestNoiseModelConfig:
    def test_defaults(self):
        cfg = NoiseModelConfig()
        assert cfg.noise_type == "neural"
        assert cfg.receptor_density_ratios == (1.0, 2.0, 2.0, 4.0)
        assert cfg.reference_index == 3

    @pytest.mark.parametrize("ref", [4, -5, 10])
    def test_reference_channel_out_of_range(self, ref):
        with pytest.raises(ConfigError):
            NoiseModelConfig(weber_reference_channel=ref)

    @pytest.mark.parametrize("kwargs", [
        {"noise_type": "quantal"},
        {"receptor_density_ratios": (1.0,)},
        {"receptor_density_ratios": (1.0, 0.0, 2.0, 4.0)},
        {"weber_fraction": 0.0},
        {"weber_achromatic": -0.1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            NoiseModelConfig(**kwargs)

    def test_numpy_scalars_stored_as_python_numbers(self, tetra_table, tmp_path):
        cfg = NoiseModelConfig(weber_reference_channel=np.int64(3),
                               weber_fraction=np.float32(0.1))
        assert type(cfg.weber_reference_channel) is int
        assert type(cfg.weber_fraction) is float
        path = coldist(tetra_table, cfg).save(tmp_path / "m.npz")
        back = JNDDistanceMatrix.load(path)
        assert back.metadata["noise"]["weber_reference_channel"] == 3

    def test_noise_scales_with_density(self):
        e = receptor_noise(NoiseModelConfig(weber_fraction=0.1))
        np.testing.assert_allclose(e, 0.1 * np.sqrt(4.0 / np.array([1.0, 2.0, 2.0, 4.0])))
        assert e[3] == pytest.approx(0.1)


# ============================================================
# coldist
# ============================================================

class TestColdist:
    def test_symmetric_non_negative_without_self_pairs(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(), references=False)
        assert len(m) == 6
        assert np.all(m.dS >= 0.0)
        for a, b in itertools.combinations(m.sample_ids, 2):
            assert m.distance(a, b) == m.distance(b, a)
        with pytest.raises(ValueError):
            m.distance("a", "a")

    def test_identical_spectra_have_zero_distance(self, egg_set):
        values = np.vstack([egg_set.values[0], egg_set.values[0], egg_set.values[1]])
        rset = type(egg_set)(egg_set.wavelength, values, ["twin1", "twin2", "other"])
        table = vismodel(rset, VisualModelConfig())
        m = coldist(table, NoiseModelConfig(include_achromatic=True))
        assert m.distance("twin1", "twin2") == 0.0
        assert m.achromatic_distance("twin1", "twin2") == 0.0
        assert m.distance("twin1", "other") > 0.0

    @pytest.mark.parametrize("noise_type", ["neural", "photon"])
    def test_larger_weber_fraction_shrinks_every_distance(self, tetra_table, noise_type):
        small = coldist(tetra_table, NoiseModelConfig(noise_type=noise_type,
                                                      weber_fraction=0.1))
        large = coldist(tetra_table, NoiseModelConfig(noise_type=noise_type,
                                                      weber_fraction=0.2))
        assert np.all(large.dS < small.dS)

    def test_neural_distance_is_inverse_in_weber(self, tetra_table):
        small = coldist(tetra_table, NoiseModelConfig(weber_fraction=0.1))
        large = coldist(tetra_table, NoiseModelConfig(weber_fraction=0.2))
        np.testing.assert_allclose(large.dS, small.dS / 2.0)

    def test_matches_tetrachromat_closed_form(self, tetra_table):
        cfg = NoiseModelConfig()
        m = coldist(tetra_table, cfg, references=False)
        e = receptor_noise(cfg)
        q = tetra_table.catches
        for (i, a), (j, b) in itertools.combinations(enumerate(m.sample_ids), 2):
            assert m.distance(a, b) == pytest.approx(_tetra_closed_form(q[i], q[j], e),
                                                     rel=1e-10)

    def test_matches_trichromat_closed_form(self):
        q = np.array([[0.3, 0.5, 0.7], [0.35, 0.45, 0.8], [0.2, 0.6, 0.6]])
        cfg = NoiseModelConfig(receptor_density_ratios=(1.0, 1.0, 2.0),
                               weber_reference_channel=0)
        m = coldist(_table(q), cfg, references=False)
        e = receptor_noise(cfg)
        assert m.distance("p0", "p1") == pytest.approx(_tri_closed_form(q[0], q[1], e))
        assert m.distance("p1", "p2") == pytest.approx(_tri_closed_form(q[1], q[2], e))

    def test_dichromat(self):
        q = np.array([[0.2, 0.5], [0.3, 0.4]])
        cfg = NoiseModelConfig(receptor_density_ratios=(1.0, 1.0), weber_fraction=0.05)
        m = coldist(_table(q), cfg, references=False)
        df = np.log(q[0] / q[1])
        expected = abs(df[0] - df[1]) / np.sqrt(2 * 0.05 ** 2)
        assert m.distance("p0", "p1") == pytest.approx(expected)

    def test_photon_noise_adds_catch_dependent_term(self, tetra_table):
        neural = coldist(tetra_table, NoiseModelConfig(noise_type="neural"))
        photon = coldist(tetra_table, NoiseModelConfig(noise_type="photon"))
        assert np.all(photon.dS < neural.dS)

    def test_achromatic_distance(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(include_achromatic=True,
                                                  weber_achromatic=0.2))
        lum = tetra_table.achromatic
        assert m.achromatic_distance("a", "d") == pytest.approx(
            abs(np.log(lum[0] / lum[3])) / 0.2)

    def test_channel_contrasts_stored(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(), references=False)
        np.testing.assert_allclose(
            m.delta_f[0], np.log(tetra_table.catches[0] / tetra_table.catches[1]))


class TestReferenceStimuli:
    def test_reference_ids(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(include_achromatic=True))
        assert m.sample_ids == ("a", "b", "c", "d")
        assert m.reference_ids == ("ref.neutral", "ref.u", "ref.s", "ref.m", "ref.l",
                                   "ref.lum")

    def test_no_luminance_reference_without_achromatic(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig())
        assert "ref.lum" not in m.reference_ids
        assert not m.has_achromatic

    def test_luminance_reference_is_one_log_unit_brighter(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(include_achromatic=True))
        assert m.distance("ref.neutral", "ref.lum") == pytest.approx(0.0, abs=1e-12)
        assert m.achromatic_distance("ref.neutral", "ref.lum") == pytest.approx(10.0)

    def test_channel_reference_contrast(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig())
        df = m.to_frame(include_references=True)
        row = df[(df.patch1 == "ref.neutral") & (df.patch2 == "ref.m")].iloc[0]
        assert row["dm"] == pytest.approx(-1.0)
        assert row["du"] == pytest.approx(0.0)

    def test_reserved_prefix_rejected(self):
        table = _table([[0.2, 0.3], [0.3, 0.2]], ids=["ref.x", "y"])
        with pytest.raises(ValidationError):
            coldist(table, NoiseModelConfig(receptor_density_ratios=(1.0, 1.0)))


class TestColdistErrors:
    def test_density_ratio_length_mismatch(self):
        table = _table([[0.2, 0.3, 0.4], [0.3, 0.2, 0.5]])
        with pytest.raises(ConfigError):
            coldist(table, NoiseModelConfig())

    def test_achromatic_requested_without_catches(self):
        table = _table([[0.2, 0.3, 0.4, 0.5], [0.3, 0.2, 0.5, 0.4]])
        with pytest.raises(ConfigError):
            coldist(table, NoiseModelConfig(include_achromatic=True))

    def test_non_positive_catch_named(self):
        table = _table([[0.2, 0.3, 0.4, 0.5], [0.3, 0.0, 0.5, 0.4], [0.1, 0.1, 0.1, 0.1]])
        with pytest.raises(ValidationError) as exc:
            coldist(table, NoiseModelConfig())
        assert exc.value.sample_ids == ("p1",)
        assert exc.value.stage == "noise"

    def test_relative_catches_warn(self, egg_set):
        table = vismodel(egg_set, VisualModelConfig(relative=True))
        with pytest.warns(UserWarning, match="relative"):
            coldist(table, NoiseModelConfig())
