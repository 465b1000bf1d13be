"""
YAML configuration for recovery runs.

Example::

    scenario_name: regression_demo
    n_trials: 20
    n_groups: 3
    n_per_group: 1000
    truth: {a: -1.5, beta: -0.1, sigma_group: 0.3}
    priors:
      a: {family: normal, params: [-1.5, 1.0]}
      sigma_group: {family: half_normal, params: [0.5]}
    sampler: {chains: 4, warmup: 1500, draws: 1500, time_budget_s: 300, engine: auto}
    rhat_threshold: 1.05
    logging: {level: INFO}
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import yaml

from .errors import ConfigurationError
from .models import PriorSpec
from .recovery import RecoveryConfig, TrueParameters
from .sampler import SamplerConfig

_TOP_LEVEL = {
    "scenario_name",
    "n_trials",
    "n_per_group",
    "n_groups",
    "xmin",
    "xmax",
    "precision",
    "level",
    "interval_kind",
    "rhat_threshold",
    "base_seed",
    "max_workers",
    "fail_fast",
}


def recovery_config_from_dict(raw: Dict) -> RecoveryConfig:
    unknown = set(raw) - _TOP_LEVEL - {"truth", "priors", "sampler", "logging"}
    if unknown:
        raise ConfigurationError("C-UNKNOWN", "unknown configuration keys", data={"keys": sorted(unknown)})
    if "truth" not in raw or "a" not in (raw["truth"] or {}):
        raise ConfigurationError("C-TRUTH", "truth.a is required", data={})
    kwargs = {k: raw[k] for k in _TOP_LEVEL if k in raw}
    truth = raw["truth"]
    kwargs["truth"] = TrueParameters(
        a=float(truth["a"]),
        beta=None if truth.get("beta") is None else float(truth["beta"]),
        sigma_group=None if truth.get("sigma_group") is None else float(truth["sigma_group"]),
    )
    kwargs["priors"] = PriorSpec.from_dict(raw.get("priors"))
    kwargs["sampler"] = SamplerConfig(**(raw.get("sampler") or {}))
    return RecoveryConfig(**kwargs)


def load_yaml(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_recovery_config(path: str) -> RecoveryConfig:
    return recovery_config_from_dict(load_yaml(path))


def configure_logging(level: str = "INFO", name: str = "isdbayes", raw: Optional[Dict] = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    if raw is not None:
        level = (raw.get("logging") or {}).get("level", level)
    log = logging.getLogger(name)
    log.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if not log.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(ch)
    return log
