"""
Recovery scenario registry.

Scenarios are looked up by name and turned into RecoveryConfig objects from
paper_config defaults plus caller overrides.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable, Dict, Optional

from ..config import recovery_config_from_dict
from ..recovery import RecoveryConfig, RecoverySummary, run_recovery
from ..reporting import write_recovery_outputs
from .paper_config import (
    AGGREGATION_PRECISION,
    INTERVAL_LEVEL,
    MIN_TRIALS_PER_SCENARIO,
    PAPER_REPRO_CMD,
    PAPER_SCENARIOS,
    RECOVERY_PRIORS,
    RHAT_THRESHOLDS,
    SAMPLER_DEFAULTS,
    XMAX,
    XMIN,
)

ScenarioBuilder = Callable[..., RecoveryConfig]

SCENARIO_ALIASES: Dict[str, str] = {
    "INTERCEPT_ONLY": "INTERCEPT_ONLY",
    "INTERCEPT": "INTERCEPT_ONLY",
    "VARYING_INTERCEPT": "VARYING_INTERCEPT",
    "VARYING": "VARYING_INTERCEPT",
    "REGRESSION": "REGRESSION",
    "REGRESSION_VARYING_INTERCEPT": "REGRESSION",
}


def resolve_scenario(name: str) -> str:
    key = name.upper()
    if key in SCENARIO_ALIASES:
        return SCENARIO_ALIASES[key]
    raise KeyError(f"Scenario '{name}' is not registered.")


def build_scenario_config(name: str, overrides: Optional[Dict] = None) -> RecoveryConfig:
    """Merge paper defaults for ``name`` with ``overrides`` (shallow for nested blocks)."""

    key = resolve_scenario(name)
    scenario = copy.deepcopy(PAPER_SCENARIOS[key])
    raw = {
        "scenario_name": f"{key.lower()}__seed{scenario['base_seed']}",
        "n_trials": MIN_TRIALS_PER_SCENARIO,
        "xmin": XMIN,
        "xmax": XMAX,
        "precision": AGGREGATION_PRECISION,
        "level": INTERVAL_LEVEL,
        "priors": copy.deepcopy(RECOVERY_PRIORS),
        "sampler": dict(SAMPLER_DEFAULTS),
    }
    raw.update(scenario)
    for k, v in (overrides or {}).items():
        if isinstance(v, dict) and isinstance(raw.get(k), dict):
            raw[k] = {**raw[k], **v}
        else:
            raw[k] = v
    cfg = recovery_config_from_dict(raw)
    if "rhat_threshold" not in (overrides or {}):
        raw["rhat_threshold"] = RHAT_THRESHOLDS[cfg.model_kind]
        cfg = recovery_config_from_dict(raw)
    return cfg


def run_scenario(
    name: str,
    overrides: Optional[Dict] = None,
    results_root: str = "results",
    logger: Optional[logging.Logger] = None,
) -> RecoverySummary:
    cfg = build_scenario_config(name, overrides)
    summary = run_recovery(cfg, logger=logger)
    key = resolve_scenario(name)
    write_recovery_outputs(
        cfg,
        summary,
        results_root=results_root,
        extra_metadata={"scenario": key, "repro_cmd": f"{PAPER_REPRO_CMD} --scenario {key}"},
    )
    return summary


SCENARIO_REGISTRY: Dict[str, ScenarioBuilder] = {
    key: (lambda overrides=None, _k=key: build_scenario_config(_k, overrides)) for key in PAPER_SCENARIOS
}
