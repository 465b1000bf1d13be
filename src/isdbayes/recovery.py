"""
Parameter-recovery trials (synthetic, deterministic by seed).

Each trial simulates grouped PLB data from known parameters, fits the model
with a sampler, and records the posterior median, credible interval and
whether the truth was covered. Trials are independent; each gets an explicit
seed derived from ``base_seed``. Aggregates (coverage, signed bias) use only
converged trials, and non-converged / failed / timed-out trials are counted
separately.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .data import prepare_model_data
from .diagnostics import INTERVAL_KINDS, max_rhat
from .errors import ConfigurationError, ConvergenceFailure, DomainError, SamplerTimeout
from .invariant_runtime import TrialContext, reset_trial_context, set_trial_context, stable_config_hash
from .models import ModelSpec, PriorSpec, model_kind_for
from .pymc_backend import PyMCSampler
from .sampler import MetropolisSampler, Sampler, SamplerConfig
from .simulate import simulate_groups

STATUS_OK = "ok"
STATUS_NOT_CONVERGED = "not_converged"
STATUS_FAILED = "failed"
STATUS_TIMEOUT = "timeout"


@dataclass(frozen=True)
class TrueParameters:
    a: float
    beta: Optional[float] = None
    sigma_group: Optional[float] = None

    def as_dict(self) -> Dict[str, float]:
        return {k: float(v) for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class RecoveryConfig:
    scenario_name: str = "recovery"
    n_trials: int = 20
    n_per_group: int = 1000
    n_groups: int = 1
    truth: TrueParameters = field(default_factory=lambda: TrueParameters(a=-1.8))
    priors: PriorSpec = field(default_factory=PriorSpec)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    xmin: float = 1.0
    xmax: float = 1000.0
    precision: Optional[float] = 0.001
    level: float = 0.95
    interval_kind: str = "eti"
    rhat_threshold: float = 1.01
    base_seed: int = 12345
    max_workers: int = 1
    fail_fast: bool = False

    def __post_init__(self):
        if self.n_trials < 1 or self.n_per_group < 1:
            raise ConfigurationError(
                "R-SIZE",
                "n_trials and n_per_group must be positive",
                data={"n_trials": self.n_trials, "n_per_group": self.n_per_group},
            )
        if not 0.0 < self.level < 1.0:
            raise ConfigurationError("R-LEVEL", "interval level must be in (0,1)", data={"level": self.level})
        if self.interval_kind not in INTERVAL_KINDS:
            raise ConfigurationError("R-INTERVAL", f"interval_kind must be one of {INTERVAL_KINDS}", data={"kind": self.interval_kind})
        if self.rhat_threshold < 1.0:
            raise ConfigurationError("R-RHAT", "rhat_threshold must be >= 1", data={"rhat_threshold": self.rhat_threshold})
        kind = self.model_kind
        if kind != "intercept" and self.n_groups < 2:
            raise ConfigurationError("R-GROUPS", f"{kind} trials need at least two groups", data={"n_groups": self.n_groups})
        if kind == "regression" and self.n_groups < 3:
            raise ConfigurationError("R-GROUPS", "regression trials need at least three groups", data={"n_groups": self.n_groups})

    @property
    def model_kind(self) -> str:
        return model_kind_for(self.truth.beta, self.truth.sigma_group)

    def to_dict(self) -> Dict:
        out = asdict(self)
        out["priors"] = self.priors.to_dict()
        out["model_kind"] = self.model_kind
        return out


@dataclass(frozen=True)
class ParameterRecovery:
    name: str
    true_value: float
    median: float
    lower: float
    upper: float
    covered: bool
    rhat: float
    ess: float

    @property
    def bias(self) -> float:
        return self.median - self.true_value


@dataclass(frozen=True)
class TrialOutcome:
    trial_index: int
    seed: int
    status: str
    max_rhat: float
    elapsed_s: float
    parameters: Tuple[ParameterRecovery, ...] = ()
    error: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class RecoverySummary:
    trials: pd.DataFrame
    parameters: pd.DataFrame
    aggregates: pd.DataFrame
    status_counts: Dict[str, int]
    outcomes: List[TrialOutcome]

    def coverage(self, name: str) -> float:
        row = self.aggregates.loc[self.aggregates["parameter"] == name]
        return float(row["coverage"].iloc[0]) if not row.empty else float("nan")

    def n_covered(self, name: str) -> int:
        row = self.aggregates.loc[self.aggregates["parameter"] == name]
        return int(row["n_covered"].iloc[0]) if not row.empty else 0


def select_sampler(model: ModelSpec, config: SamplerConfig, logger: Optional[logging.Logger] = None) -> Sampler:
    """Engine for a fit: NUTS when group offsets are sampled, else Metropolis."""

    engine = config.engine
    if engine == "auto":
        engine = "nuts" if model.has_groups else "metropolis"
    if engine == "nuts":
        return PyMCSampler(logger=logger)
    return MetropolisSampler(logger=logger)


def trial_seeds(base_seed: int, n_trials: int) -> List[int]:
    """Independent per-trial seeds drawn from a master generator."""

    rng_master = np.random.default_rng(int(base_seed))
    return [int(s) for s in rng_master.integers(0, 2**32 - 1, size=int(n_trials))]


def run_trial(
    cfg: RecoveryConfig,
    trial_index: int,
    seed: int,
    sampler: Optional[Sampler] = None,
    config_hash: Optional[str] = None,
) -> TrialOutcome:
    """Simulate, fit and summarize one trial.

    Configuration, domain and timeout errors mark the trial instead of
    propagating, unless ``cfg.fail_fast`` is set.
    """

    model = ModelSpec(cfg.model_kind)
    sampler = sampler or select_sampler(model, cfg.sampler)
    ctx = TrialContext(cfg.scenario_name, trial_index, seed, config_hash)
    token = set_trial_context(ctx)
    start = time.monotonic()
    try:
        rng = np.random.default_rng(seed)
        sim = simulate_groups(
            rng,
            n_groups=cfg.n_groups,
            n_per_group=cfg.n_per_group,
            a=cfg.truth.a,
            xmin=cfg.xmin,
            xmax=cfg.xmax,
            beta=cfg.truth.beta,
            sigma_group=cfg.truth.sigma_group,
            precision=cfg.precision,
        )
        data = prepare_model_data(sim.data, predictor_col="predictor" if model.has_beta else None)
        sampler_seed = int(rng.integers(0, 2**32 - 1))
        draws = sampler.sample(model, data, cfg.priors, cfg.sampler, sampler_seed)
        summary = draws.summary(level=cfg.level, kind=cfg.interval_kind)
    except SamplerTimeout as exc:
        if cfg.fail_fast:
            raise
        return TrialOutcome(trial_index, seed, STATUS_TIMEOUT, float("nan"), time.monotonic() - start, error=str(exc))
    except (ConfigurationError, DomainError) as exc:
        if cfg.fail_fast:
            raise
        return TrialOutcome(trial_index, seed, STATUS_FAILED, float("nan"), time.monotonic() - start, error=str(exc))
    finally:
        reset_trial_context(token)

    rhat = max_rhat(summary)
    by_name = summary.set_index("parameter")
    recoveries = []
    for name, true_value in cfg.truth.as_dict().items():
        row = by_name.loc[name]
        recoveries.append(
            ParameterRecovery(
                name=name,
                true_value=true_value,
                median=float(row["median"]),
                lower=float(row["lower"]),
                upper=float(row["upper"]),
                covered=bool(row["lower"] <= true_value <= row["upper"]),
                rhat=float(row["rhat"]),
                ess=float(row["ess"]),
            )
        )
    status = STATUS_OK if rhat <= cfg.rhat_threshold else STATUS_NOT_CONVERGED
    if status == STATUS_NOT_CONVERGED and cfg.fail_fast:
        raise ConvergenceFailure(
            "R-RHAT",
            "max R-hat above threshold",
            data={"trial_index": trial_index, "seed": seed, "max_rhat": rhat, "threshold": cfg.rhat_threshold},
        )
    return TrialOutcome(
        trial_index=trial_index,
        seed=seed,
        status=status,
        max_rhat=rhat,
        elapsed_s=time.monotonic() - start,
        parameters=tuple(recoveries),
    )


def _run_trial_task(args) -> TrialOutcome:
    cfg, trial_index, seed, sampler, config_hash = args
    return run_trial(cfg, trial_index, seed, sampler=sampler, config_hash=config_hash)


def run_recovery(
    cfg: RecoveryConfig,
    sampler: Optional[Sampler] = None,
    logger: Optional[logging.Logger] = None,
) -> RecoverySummary:
    """Run ``cfg.n_trials`` independent trials and aggregate them."""

    log = logger or logging.getLogger(__name__)
    seeds = trial_seeds(cfg.base_seed, cfg.n_trials)
    config_hash = stable_config_hash(cfg.to_dict())
    tasks = [(cfg, i, s, sampler, config_hash) for i, s in enumerate(seeds)]
    log.info(
        "Recovery '%s': %d trials, model=%s, engine=%s, groups=%d, n_per_group=%d",
        cfg.scenario_name,
        cfg.n_trials,
        cfg.model_kind,
        cfg.sampler.engine if sampler is None else type(sampler).__name__,
        cfg.n_groups,
        cfg.n_per_group,
    )

    if cfg.max_workers > 1:
        with ProcessPoolExecutor(max_workers=cfg.max_workers) as executor:
            outcomes = list(executor.map(_run_trial_task, tasks))
    else:
        outcomes = [_run_trial_task(t) for t in tasks]

    for out in outcomes:
        level = logging.INFO if out.converged else logging.WARNING
        log.log(
            level,
            "Trial %d seed=%d status=%s max_rhat=%.4f (%.1fs)",
            out.trial_index,
            out.seed,
            out.status,
            out.max_rhat,
            out.elapsed_s,
        )
    summary = summarize_recovery(outcomes)
    log.info("Recovery '%s' status counts: %s", cfg.scenario_name, summary.status_counts)
    return summary


def summarize_recovery(outcomes: List[TrialOutcome]) -> RecoverySummary:
    """Per-trial tables plus coverage and bias over converged trials."""

    trials = pd.DataFrame(
        [
            {
                "trial_index": o.trial_index,
                "seed": o.seed,
                "status": o.status,
                "max_rhat": o.max_rhat,
                "elapsed_s": o.elapsed_s,
                "error": o.error,
            }
            for o in outcomes
        ],
        columns=["trial_index", "seed", "status", "max_rhat", "elapsed_s", "error"],
    )
    param_rows = []
    for o in outcomes:
        for p in o.parameters:
            param_rows.append(
                {
                    "trial_index": o.trial_index,
                    "status": o.status,
                    "parameter": p.name,
                    "true_value": p.true_value,
                    "median": p.median,
                    "lower": p.lower,
                    "upper": p.upper,
                    "covered": p.covered,
                    "bias": p.bias,
                    "rhat": p.rhat,
                    "ess": p.ess,
                }
            )
    parameters = pd.DataFrame(
        param_rows,
        columns=["trial_index", "status", "parameter", "true_value", "median", "lower", "upper", "covered", "bias", "rhat", "ess"],
    )

    agg_rows = []
    converged = parameters.loc[parameters["status"] == STATUS_OK]
    for name in parameters["parameter"].unique():
        sub = converged.loc[converged["parameter"] == name]
        n = int(len(sub))
        agg_rows.append(
            {
                "parameter": name,
                "n_converged": n,
                "n_covered": int(sub["covered"].sum()),
                "coverage": float(sub["covered"].mean()) if n else float("nan"),
                "bias_mean": float(sub["bias"].mean()) if n else float("nan"),
                "bias_sd": float(sub["bias"].std(ddof=1)) if n > 1 else float("nan"),
                "mean_interval_width": float((sub["upper"] - sub["lower"]).mean()) if n else float("nan"),
            }
        )
    aggregates = pd.DataFrame(
        agg_rows,
        columns=["parameter", "n_converged", "n_covered", "coverage", "bias_mean", "bias_sd", "mean_interval_width"],
    )
    status_counts = {
        s: int((trials["status"] == s).sum()) for s in (STATUS_OK, STATUS_NOT_CONVERGED, STATUS_FAILED, STATUS_TIMEOUT)
    }
    return RecoverySummary(
        trials=trials,
        parameters=parameters,
        aggregates=aggregates,
        status_counts=status_counts,
        outcomes=list(outcomes),
    )
