"""
Centralized recovery-scenario defaults for paper runs.

Thresholds and grids only; no kernel or sampler logic lives here. Adjust here
(single source of truth).
"""

from __future__ import annotations

# Minimum trials per scenario to claim paper readiness.
MIN_TRIALS_PER_SCENARIO = 20
SMOKE_TRIAL_THRESHOLD = 5
# Nominal credible level and the coverage a scenario must reach.
INTERVAL_LEVEL = 0.95
MIN_COVERAGE = 0.9
# R-hat acceptance per model configuration.
RHAT_THRESHOLDS = {
    "intercept": 1.01,
    "varying_intercept": 1.05,
    "regression": 1.05,
}
# Default aggregation precision for simulated body sizes.
AGGREGATION_PRECISION = 0.001
# Support of simulated body sizes.
XMIN = 1.0
XMAX = 1000.0

# Priors used for the empirical stream-community fits.
EMPIRICAL_PRIORS = {
    "a": {"family": "normal", "params": [-1.5, 0.2]},
    "beta": {"family": "normal", "params": [0.0, 0.1]},
    "sigma_group": {"family": "half_normal", "params": [0.1]},
}
# Weakly informative priors for recovery runs.
RECOVERY_PRIORS = {
    "a": {"family": "normal", "params": [-1.5, 1.0]},
    "beta": {"family": "normal", "params": [0.0, 0.5]},
    "sigma_group": {"family": "half_normal", "params": [0.5]},
}

SAMPLER_DEFAULTS = {"chains": 4, "warmup": 1500, "draws": 1500, "time_budget_s": 600.0, "engine": "auto"}

PAPER_SCENARIOS = {
    "INTERCEPT_ONLY": {
        "truth": {"a": -1.8},
        "n_groups": 1,
        "n_per_group": 1000,
        "base_seed": 310000,
    },
    "VARYING_INTERCEPT": {
        "truth": {"a": -1.5, "sigma_group": 0.3},
        "n_groups": 5,
        "n_per_group": 500,
        "base_seed": 320000,
    },
    "REGRESSION": {
        "truth": {"a": -1.5, "beta": -0.1, "sigma_group": 0.3},
        "n_groups": 3,
        "n_per_group": 1000,
        "base_seed": 330000,
    },
}

# Reproduction command template for the recovery suite.
PAPER_REPRO_CMD = "python run_recovery_suite.py"
