# -*- coding: utf-8 -*-
"""
Clutch: Perceptual colour spaces for avian egg patches
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: clutch_pipeline.py — Per-group pipeline, JSON configuration, CLI.

    reflectance CSV ─▶ subset(group) ─▶ process_spectra ─▶ vismodel
                   ─▶ coldist ─▶ jnd2xyz ─▶ artifacts

Every group runs independently from the same loaded file.  A failing
group is logged and recorded in the report; the remaining groups still
run.  Artifacts of a stage are written only once that stage succeeded.

Example configuration::

    {
      "input_path": "eggs.csv",
      "output_dir": "out",
      "groups": ["background", "spot"],
      "processing": {"span": 0.25},
      "vismodel": {"visual_system": "avg.uv", "achromatic_channel": "dc"},
      "noise": {"include_achromatic": true, "weber_fraction": 0.1},
      "projection": {"reference_channel_1": "l", "reference_channel_2": "u"}
    }
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from __about__ import __version__
from clutch_distances import JNDDistanceMatrix
from clutch_errors import ClutchError, ConfigError
from clutch_io import read_reflectance, write_distance_table, write_reflectance, write_xyz
from clutch_noise import NoiseModelConfig, coldist
from clutch_preprocess import ProcessingConfig, process_spectra
from clutch_projection import PerceptualSpace, ProjectionConfig, jnd2xyz
from clutch_spectraldata import ReflectanceSet
from clutch_vismodel import QuantumCatchTable, VisualModelConfig, vismodel
from visual_models import VisualSystem

__all__ = [
    "PipelineConfig",
    "GroupResult",
    "PipelineReport",
    "load_config",
    "run_group",
    "run_pipeline",
    "main",
]

logger = logging.getLogger(__name__)

StageCallback = Callable[[str, Any], None]

_SECTIONS = {
    "processing": ProcessingConfig,
    "vismodel": VisualModelConfig,
    "noise": NoiseModelConfig,
    "projection": ProjectionConfig,
}


# ---------------------------------------------------------------------------
# 1.  Configuration
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class PipelineConfig:
    """Everything one run needs; each stage receives its own section."""
    input_path: Optional[str] = None
    output_dir: str = "clutch_output"
    groups:     Tuple[str, ...] = ("background", "spot")
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    vismodel:   VisualModelConfig = field(default_factory=VisualModelConfig)
    noise:      NoiseModelConfig = field(default_factory=NoiseModelConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)

    def __post_init__(self) -> None:
        groups = (self.groups,) if isinstance(self.groups, str) else tuple(self.groups)
        if not groups:
            raise ConfigError("at least one group is required", stage="config")
        if len(set(groups)) != len(groups):
            raise ConfigError(f"duplicate groups in {groups}", stage="config")
        object.__setattr__(self, "groups", groups)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form; ``load_config`` accepts it back."""
        out: Dict[str, Any] = {
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "groups": list(self.groups),
        }
        for name in _SECTIONS:
            section = getattr(self, name)
            out[name] = {f.name: _plain(getattr(section, f.name))
                         for f in dataclasses.fields(section)}
        return out


def _plain(value: Any) -> Any:
    if isinstance(value, VisualSystem):
        return value.name
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (tuple, list)):
        return [_plain(v) for v in value]
    return value


def _tupled(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_tupled(v) for v in value)
    return value


def _unknown_keys(allowed: Sequence[str], given: Dict[str, Any], prefix: str = "") -> List[str]:
    return [f"{prefix}{key}" for key in given if key not in allowed]


def config_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> PipelineConfig:
    """
    Build a ``PipelineConfig`` from plain JSON data.

    Unknown keys at any level raise ``ConfigError``; lists become tuples.
    A relative ``input_path`` is resolved against *base_dir*.
    """
    top = [f.name for f in dataclasses.fields(PipelineConfig)]
    unknown = _unknown_keys(top, data)
    sections: Dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        raw = data.get(name) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"section '{name}' must be an object", stage="config")
        unknown += _unknown_keys([f.name for f in dataclasses.fields(cls)], raw,
                                 prefix=f"{name}.")
        sections[name] = raw
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}",
                          stage="config")

    built = {name: cls(**{k: _tupled(v) for k, v in sections[name].items()})
             for name, cls in _SECTIONS.items()}
    input_path = data.get("input_path")
    if input_path is not None and base_dir is not None and not Path(input_path).is_absolute():
        input_path = str(base_dir / input_path)
    kwargs: Dict[str, Any] = {"input_path": input_path}
    if "output_dir" in data:
        kwargs["output_dir"] = str(data["output_dir"])
    if "groups" in data:
        kwargs["groups"] = _tupled(data["groups"])
    return PipelineConfig(**kwargs, **built)


def load_config(path: Union[str, Path]) -> PipelineConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path.name} is not valid JSON: {exc}", stage="config") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name} must hold a JSON object", stage="config")
    return config_from_dict(data, base_dir=path.parent)


# ---------------------------------------------------------------------------
# 2.  Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class GroupResult:
    """Outputs of every stage for one group."""
    group:   str
    cleaned: ReflectanceSet
    catches: QuantumCatchTable
    matrix:  JNDDistanceMatrix
    space:   PerceptualSpace


@dataclass
class PipelineReport:
    """Outcome of ``run_pipeline``: successes, failures and written files."""
    results:   Dict[str, GroupResult] = field(default_factory=dict)
    failures:  Dict[str, ClutchError] = field(default_factory=dict)
    artifacts: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        parts = [f"{len(self.results)} group(s) succeeded"]
        if self.failures:
            parts.append(f"{len(self.failures)} failed ({', '.join(self.failures)})")
        return ", ".join(parts)


# ---------------------------------------------------------------------------
# 3.  Runner
# ---------------------------------------------------------------------------
def run_group(
    rset: ReflectanceSet,
    group: str,
    config: PipelineConfig,
    on_stage: Optional[StageCallback] = None,
) -> GroupResult:
    """
    Run every stage for one group of *rset*.

    *on_stage* is called as ``on_stage(stage_name, output)`` after each
    stage succeeds ("preprocess", "vismodel", "noise", "projection").
    """
    def done(stage: str, output: Any) -> None:
        if on_stage is not None:
            on_stage(stage, output)

    logger.info("group '%s': start", group)
    cleaned = process_spectra(rset.subset(group), config.processing)
    done("preprocess", cleaned)
    catches = vismodel(cleaned, config.vismodel)
    done("vismodel", catches)
    matrix = coldist(catches, config.noise, references=True)
    done("noise", matrix)
    space = jnd2xyz(matrix, config.projection)
    done("projection", space)
    logger.info("group '%s': %d samples projected (stress %.3g)",
                group, len(space), space.stress)
    return GroupResult(group, cleaned, catches, matrix, space)


class _ArtifactWriter:
    """Writes each stage's artifact into the output directory as it lands."""

    def __init__(self, out_dir: Path, group: str, report: PipelineReport) -> None:
        self.out_dir = out_dir
        self.group = group
        self.report = report

    def __call__(self, stage: str, output: Any) -> None:
        stem = self.out_dir / self.group
        if stage == "preprocess":
            paths = [write_reflectance(output, f"{stem}_reflectance.csv")]
        elif stage == "vismodel":
            path = Path(f"{stem}_catches.csv")
            output.to_frame().to_csv(path)
            paths = [path]
        elif stage == "noise":
            paths = [write_distance_table(output, f"{stem}_jnd.csv"),
                     output.save(f"{stem}_jnd.npz")]
        elif stage == "projection":
            paths = [write_xyz(output, f"{stem}_xyz.csv"),
                     write_xyz(output, f"{stem}_xyz_refs.csv", include_references=True)]
        else:
            return
        for p in paths:
            logger.debug("wrote %s", p)
        self.report.artifacts.extend(paths)


def run_pipeline(config: PipelineConfig, write: bool = True) -> PipelineReport:
    """
    Load ``config.input_path`` and run every configured group.

    Raises:
        ConfigError: No input path configured.
        ValidationError: The input file itself is unusable.
    """
    if not config.input_path:
        raise ConfigError("input_path is not set", stage="config")
    rset = read_reflectance(config.input_path, config.groups)
    report = PipelineReport()
    out_dir = Path(config.output_dir)
    if write:
        out_dir.mkdir(parents=True, exist_ok=True)
        cfg_path = out_dir / "config.json"
        cfg_path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
        report.artifacts.append(cfg_path)

    for group in config.groups:
        writer = _ArtifactWriter(out_dir, group, report) if write else None
        try:
            report.results[group] = run_group(rset, group, config, on_stage=writer)
        except ClutchError as exc:
            logger.error("group '%s' failed: %s", group, exc)
            report.failures[group] = exc
    logger.info(report.summary())
    return report


# ---------------------------------------------------------------------------
# 4.  CLI
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="clutch",
        description="Project egg-patch reflectance into an avian perceptual colour space.",
    )
    ap.add_argument("--config", required=True, help="JSON pipeline configuration")
    ap.add_argument("--input", default=None, help="Reflectance CSV (overrides input_path)")
    ap.add_argument("--output", default=None, help="Output directory (overrides output_dir)")
    ap.add_argument("--group", nargs="+", default=None,
                    help="Group tag(s) to run (overrides groups)")
    ap.add_argument("--log-level", default="INFO",
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args.config)
        overrides: Dict[str, Any] = {}
        if args.input:
            overrides["input_path"] = args.input
        if args.output:
            overrides["output_dir"] = args.output
        if args.group:
            overrides["groups"] = tuple(args.group)
        if overrides:
            config = dataclasses.replace(config, **overrides)
        report = run_pipeline(config)
    except ClutchError as exc:
        logger.error("%s", exc)
        return 1
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
