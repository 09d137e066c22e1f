# -*- coding: utf-8 -*-
"""Tests for the JND distance matrix container."""

import numpy as np
import pytest

from clutch_distances import JNDDistanceMatrix, reference_id
from clutch_errors import ValidationError
from clutch_noise import NoiseModelConfig, coldist

IDS = ("a", "b", "c")
SQUARE = np.array([
    [0.0, 1.0, 2.0],
    [1.0, 0.0, 1.5],
    [2.0, 1.5, 0.0],
])


class TestFromSquare:
    def test_round_trip(self):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE)
        ids, sq = m.to_square()
        assert ids == IDS
        np.testing.assert_array_equal(sq, SQUARE)
        assert m.distance("c", "a") == 2.0
        assert m["b", "c"] == 1.5

    def test_asymmetric_rejected(self):
        bad = SQUARE.copy()
        bad[0, 1] = 1.2
        with pytest.raises(ValidationError) as exc:
            JNDDistanceMatrix.from_square(IDS, bad)
        assert set(exc.value.sample_ids) == {"a", "b"}

    def test_nonzero_diagonal_rejected(self):
        bad = SQUARE.copy()
        bad[2, 2] = 0.1
        with pytest.raises(ValidationError):
            JNDDistanceMatrix.from_square(IDS, bad)

    def test_references_detected_by_prefix(self):
        ids = IDS + (reference_id("u"),)
        sq = np.ones((4, 4)) - np.eye(4)
        m = JNDDistanceMatrix.from_square(ids, sq)
        assert m.sample_ids == IDS
        assert m.reference_ids == ("ref.u",)
        assert m.to_square()[1].shape == (3, 3)

    def test_negative_distance_rejected(self):
        bad = -SQUARE
        with pytest.raises(ValidationError):
            JNDDistanceMatrix.from_square(IDS, bad)


class TestLookup:
    def test_unknown_patch(self):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE)
        with pytest.raises(KeyError):
            m.distance("a", "zzz")

    def test_self_distance_excluded(self):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE)
        with pytest.raises(ValueError):
            m.distance("b", "b")
        assert len(m) == 3

    def test_arrays_are_read_only(self):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE)
        with pytest.raises(ValueError):
            m.dS[0] = 3.0

    def test_achromatic_missing(self):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE)
        assert m.achromatic_distance("a", "b") is None
        with pytest.raises(ValueError):
            m.to_square(achromatic=True)


class TestExport:
    def test_frame_excludes_references(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig(include_achromatic=True))
        df = m.to_frame()
        assert list(df.columns[:4]) == ["patch1", "patch2", "dS", "dL"]
        assert {"du", "ds", "dm", "dl"} <= set(df.columns)
        assert len(df) == 6
        assert not df.patch1.str.startswith("ref.").any()
        assert not df.patch2.str.startswith("ref.").any()

    def test_frame_with_references(self, tetra_table):
        m = coldist(tetra_table, NoiseModelConfig())
        assert len(m.to_frame(include_references=True)) == len(m)

    def test_save_load_is_lossless(self, tetra_table, tmp_path):
        m = coldist(tetra_table, NoiseModelConfig(include_achromatic=True,
                                                  noise_type="photon"))
        path = m.save(tmp_path / "bg_jnd")
        assert path.suffix == ".npz"
        back = JNDDistanceMatrix.load(path)
        assert back.patch_ids == m.patch_ids
        assert back.sample_ids == m.sample_ids
        assert back.channel_names == m.channel_names
        assert back.group == "background"
        assert back.metadata == m.metadata
        np.testing.assert_array_equal(back.dS, m.dS)
        np.testing.assert_array_equal(back.dL, m.dL)
        np.testing.assert_array_equal(back.delta_f, m.delta_f)

    def test_save_without_optional_arrays(self, tmp_path):
        m = JNDDistanceMatrix.from_square(IDS, SQUARE, group="spot")
        back = JNDDistanceMatrix.load(m.save(tmp_path / "plain.npz"))
        assert back.dL is None and back.delta_f is None
        np.testing.assert_array_equal(back.dS, m.dS)
