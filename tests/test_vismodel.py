# -*- coding: utf-8 -*-
"""Tests for reflectance-to-quantum-catch conversion."""

import numpy as np
import pytest

from clutch_errors import ConfigError
from clutch_spectraldata import ReflectanceSet
from clutch_vismodel import VisualModelConfig, quantum_catch, vismodel
from visual_models import VisualSystem, get_visual_system


def _flat_set(wavelength, levels):
    values = np.vstack([np.full_like(wavelength, v) for v in levels])
    return ReflectanceSet(wavelength, values, [f"flat{i}" for i in range(len(levels))])


# ============================================================
# VisualModelConfig
# ============================================================

class TestVisualModelConfig:
    def test_name_resolves_to_system(self):
        cfg = VisualModelConfig(visual_system="avg.v")
        assert isinstance(cfg.visual_system, VisualSystem)
        assert cfg.channel_names == ("v", "s", "m", "l")

    def test_unknown_system(self):
        with pytest.raises(ConfigError):
            VisualModelConfig(visual_system="bluetit")

    def test_unknown_achromatic_receptor(self):
        with pytest.raises(ConfigError):
            VisualModelConfig(achromatic_channel="rod")

    @pytest.mark.parametrize("scale", [0.0, -1.0, float("nan")])
    def test_bad_illuminant_scale(self, scale):
        with pytest.raises(ConfigError):
            VisualModelConfig(illuminant_scale=scale)

    def test_bad_spectrum_source(self):
        with pytest.raises(ConfigError):
            VisualModelConfig(illuminant="forest shade")


# ============================================================
# vismodel / quantum_catch
# ============================================================

class TestVismodel:
    def test_flat_reflectance_equals_level_under_adaptation(self, wavelength):
        table = vismodel(_flat_set(wavelength, [0.5, 0.25]), VisualModelConfig())
        np.testing.assert_allclose(table.catches[0], 0.5)
        np.testing.assert_allclose(table.catches[1], 0.25)
        np.testing.assert_allclose(table.achromatic, [0.5, 0.25])

    def test_without_adaptation_catch_scales_with_light(self, wavelength):
        rset = _flat_set(wavelength, [1.0])
        cfg = VisualModelConfig(adaptation=False, illuminant_scale=2.0)
        np.testing.assert_allclose(vismodel(rset, cfg).catches, 2.0)

    def test_adaptation_cancels_illuminant_scale(self, egg_set):
        a = vismodel(egg_set, VisualModelConfig(illuminant_scale=1.0))
        b = vismodel(egg_set, VisualModelConfig(illuminant_scale=50.0))
        np.testing.assert_allclose(a.catches, b.catches)

    def test_relative_rows_sum_to_one(self, egg_set):
        table = vismodel(egg_set, VisualModelConfig(relative=True))
        np.testing.assert_allclose(table.catches.sum(axis=1), 1.0)
        assert table.relative

    def test_shape_and_order(self, egg_set):
        table = vismodel(egg_set, VisualModelConfig())
        assert table.catches.shape == (8, 4)
        assert table.sample_ids == egg_set.sample_ids
        assert table.channel_names == ("u", "s", "m", "l")

    def test_single_spectrum_matches_set(self, egg_set):
        cfg = VisualModelConfig()
        table = vismodel(egg_set, cfg)
        vec = quantum_catch(egg_set["egg2_spot"], cfg)
        np.testing.assert_allclose(vec.catches, table.vector("egg2_spot").catches)
        assert vec["l"] == pytest.approx(table.catches[5, 3])

    def test_group_carried_when_unique(self, background_set, egg_set):
        assert vismodel(background_set, VisualModelConfig()).group == "background"
        assert vismodel(egg_set, VisualModelConfig()).group is None

    def test_achromatic_disabled(self, egg_set):
        table = vismodel(egg_set, VisualModelConfig(achromatic_channel=None))
        assert table.achromatic is None
        assert "lum" not in table.to_frame().columns

    def test_to_frame(self, egg_set):
        df = vismodel(egg_set, VisualModelConfig()).to_frame()
        assert list(df.columns) == ["u", "s", "m", "l", "lum"]
        assert df.index.name == "sample_id"

    def test_custom_system(self, wavelength, egg_set):
        sens = np.column_stack([np.exp(-((wavelength - p) / 40.0) ** 2) for p in (430, 560)])
        system = VisualSystem.from_arrays("di", wavelength, sens, ["s", "l"])
        table = vismodel(egg_set, VisualModelConfig(visual_system=system,
                                                    achromatic_channel=None))
        assert table.catches.shape == (8, 2)

    def test_background_array_must_match_grid(self, egg_set):
        cfg = VisualModelConfig(background=np.ones(7))
        with pytest.raises(ConfigError):
            vismodel(egg_set, cfg)

    def test_dark_background_breaks_adaptation(self, egg_set, wavelength):
        cfg = VisualModelConfig(background=np.zeros_like(wavelength))
        with pytest.raises(ConfigError) as exc:
            vismodel(egg_set, cfg)
        assert exc.value.stage == "vismodel"

    def test_uv_system_sees_uv(self, wavelength):
        # Reflectance only below 400 nm: the u channel dominates
        values = np.where(wavelength < 400.0, 1.0, 1e-3)[np.newaxis, :]
        rset = ReflectanceSet(wavelength, values, ["uv_patch"])
        q = vismodel(rset, VisualModelConfig(visual_system=get_visual_system("avg.uv")))
        assert np.argmax(q.catches[0]) == 0
