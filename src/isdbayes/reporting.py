"""
Recovery artifacts under results/<scenario>/.

- trials.csv: one row per trial (seed, status, max R-hat, error)
- parameters.csv: one row per trial and parameter
- aggregates.csv: coverage and bias over converged trials
- summary.json / config_snapshot.json (with config hash)
"""

from __future__ import annotations

import json
import os
from typing import Dict, Optional

import numpy as np

from .invariant_runtime import stable_config_hash
from .recovery import RecoveryConfig, RecoverySummary

REPORTING_VERSION = "recovery_v1"


def sanitize_for_json(obj):
    """Convert numpy scalars/arrays to JSON-serializable Python types."""

    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        obj = float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return [sanitize_for_json(v) for v in obj.tolist()]
    if isinstance(obj, float) and not np.isfinite(obj):
        return None
    return obj


def write_recovery_outputs(
    cfg: RecoveryConfig,
    summary: RecoverySummary,
    results_root: str = "results",
    extra_metadata: Optional[Dict] = None,
) -> str:
    """Persist scenario artifacts and return the results directory."""

    results_dir = os.path.join(results_root, cfg.scenario_name)
    os.makedirs(results_dir, exist_ok=True)

    summary.trials.to_csv(os.path.join(results_dir, "trials.csv"), index=False)
    summary.parameters.to_csv(os.path.join(results_dir, "parameters.csv"), index=False)
    summary.aggregates.to_csv(os.path.join(results_dir, "aggregates.csv"), index=False)

    cfg_clean = sanitize_for_json(cfg.to_dict())
    config_hash = stable_config_hash(cfg_clean)
    with open(os.path.join(results_dir, "config_snapshot.json"), "w", encoding="utf-8") as f:
        json.dump(cfg_clean, f, indent=2, sort_keys=True)

    payload = {
        "scenario_name": cfg.scenario_name,
        "model_kind": cfg.model_kind,
        "reporting_version": REPORTING_VERSION,
        "config_hash": config_hash,
        "status_counts": summary.status_counts,
        "aggregates": summary.aggregates.to_dict(orient="records"),
        "metadata": dict(extra_metadata or {}),
        "note": "Coverage and bias use converged trials only.",
    }
    with open(os.path.join(results_dir, "summary.json"), "w", encoding="utf-8") as f:
        json.dump(sanitize_for_json(payload), f, indent=2)
    return results_dir
