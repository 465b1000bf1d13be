"""
Posterior sampling engines behind a single contract.

A sampler takes (model, data, priors, config, seed) and returns PosteriorDraws:
one row per iteration per chain, keyed by ``.chain`` / ``.iteration`` /
``.draw`` plus one column per natural-scale parameter.

The built-in engine is a multi-chain adaptive random-walk Metropolis sampler.
During warmup it learns the proposal covariance from the chain history and
tunes a global step scale towards the optimal acceptance rate; both are
frozen for the retained draws. Chains are run one after another, each from
its own generator spawned from the run seed. Models with group offsets
are fitted with the NUTS engine in ``pymc_backend`` instead.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import numpy as np
import pandas as pd

from .data import ModelData
from .diagnostics import summarize_chains
from .errors import ConfigurationError, DomainError, SamplerTimeout
from .models import ModelSpec, PriorSpec

TARGET_ACCEPT = 0.234
ADAPT_EVERY = 50
TIME_CHECK_EVERY = 50
# "auto" picks Metropolis for intercept-only fits and NUTS when groups vary.
ENGINES = ("auto", "metropolis", "nuts")


@dataclass(frozen=True)
class SamplerConfig:
    chains: int = 4
    warmup: int = 1000
    draws: int = 1000
    time_budget_s: Optional[float] = None
    engine: str = "auto"

    def __post_init__(self):
        if self.engine not in ENGINES:
            raise ConfigurationError("SMP-ENGINE", f"unknown sampler engine '{self.engine}'", data={"allowed": list(ENGINES)})
        if self.chains < 1 or self.draws < 1 or self.warmup < 0:
            raise ConfigurationError(
                "SMP-CONFIG",
                "chains and draws must be positive, warmup non-negative",
                data={"chains": self.chains, "warmup": self.warmup, "draws": self.draws},
            )
        if self.time_budget_s is not None and self.time_budget_s <= 0.0:
            raise ConfigurationError("SMP-BUDGET", "time budget must be positive", data={"time_budget_s": self.time_budget_s})


class PosteriorDraws:
    """Draws table plus convenience accessors for per-parameter chains."""

    META_COLUMNS = (".chain", ".iteration", ".draw")

    def __init__(self, frame: pd.DataFrame, parameter_names: List[str], sampler_stats: Optional[Dict] = None):
        self.frame = frame
        self.parameter_names = list(parameter_names)
        self.sampler_stats = sampler_stats or {}

    @classmethod
    def from_array(cls, samples: np.ndarray, parameter_names: List[str], sampler_stats: Optional[Dict] = None) -> "PosteriorDraws":
        """Build from an array shaped (chains, draws, parameters)."""

        n_chains, n_draws, n_params = samples.shape
        if n_params != len(parameter_names):
            raise ValueError("parameter_names must match the last axis of samples")
        frame = pd.DataFrame(samples.reshape(n_chains * n_draws, n_params), columns=parameter_names)
        frame.insert(0, ".chain", np.repeat(np.arange(1, n_chains + 1), n_draws))
        frame.insert(1, ".iteration", np.tile(np.arange(1, n_draws + 1), n_chains))
        frame.insert(2, ".draw", np.arange(1, n_chains * n_draws + 1))
        return cls(frame, parameter_names, sampler_stats)

    @property
    def n_chains(self) -> int:
        return int(self.frame[".chain"].nunique())

    @property
    def n_draws(self) -> int:
        return int(len(self.frame) // max(self.n_chains, 1))

    def chains(self, name: str) -> np.ndarray:
        """Draws of one parameter shaped (chains, draws)."""

        return self.frame[name].to_numpy(dtype=float).reshape(self.n_chains, -1)

    def values(self, name: str) -> np.ndarray:
        return self.frame[name].to_numpy(dtype=float)

    def summary(self, level: float = 0.95, kind: str = "eti", parameters: Optional[List[str]] = None) -> pd.DataFrame:
        names = parameters or self.parameter_names
        return summarize_chains(((n, self.chains(n)) for n in names), level=level, kind=kind)


class Sampler(Protocol):
    def sample(
        self,
        model: ModelSpec,
        data: ModelData,
        priors: PriorSpec,
        config: SamplerConfig,
        seed: int,
    ) -> PosteriorDraws: ...


class MetropolisSampler:
    """Adaptive random-walk Metropolis.

    Mixes well on the intercept-only model. The non-centred group offsets form
    a curved ridge a random walk cannot traverse, so grouped fits belong on NUTS.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)

    @staticmethod
    def _safe_log_posterior(model: ModelSpec, theta: np.ndarray, data: ModelData, priors: PriorSpec) -> float:
        # Proposals the kernel rejects are rejected by the chain, not fatal.
        try:
            lp = model.log_posterior(theta, data, priors)
        except DomainError:
            return -math.inf
        return lp if np.isfinite(lp) else -math.inf

    def _run_chain(
        self,
        chain_id: int,
        model: ModelSpec,
        data: ModelData,
        priors: PriorSpec,
        config: SamplerConfig,
        rng: np.random.Generator,
        deadline: Optional[float],
    ):
        theta = model.initial_point(rng, data, priors)
        lp = self._safe_log_posterior(model, theta, data, priors)
        tries = 0
        while not np.isfinite(lp):
            tries += 1
            if tries > 100:
                raise ConfigurationError("SMP-INIT", "no finite starting point found", data={"chain": chain_id})
            theta = model.initial_point(rng, data, priors)
            lp = self._safe_log_posterior(model, theta, data, priors)

        d = theta.size
        cov = np.eye(d) * 0.01
        log_scale = math.log(2.38**2 / d)
        chol = np.linalg.cholesky(cov * math.exp(log_scale))
        history: List[np.ndarray] = []
        total = config.warmup + config.draws
        kept = np.empty((config.draws, d))
        accepted_warmup = 0
        accepted_kept = 0

        for it in range(total):
            if deadline is not None and it % TIME_CHECK_EVERY == 0 and time.monotonic() > deadline:
                raise SamplerTimeout(
                    "SMP-TIMEOUT",
                    "sampler exceeded its wall-clock budget",
                    data={"chain": chain_id, "iteration": it, "time_budget_s": config.time_budget_s},
                )
            proposal = theta + chol @ rng.standard_normal(d)
            lp_new = self._safe_log_posterior(model, proposal, data, priors)
            accept_prob = math.exp(min(0.0, lp_new - lp)) if np.isfinite(lp_new) else 0.0
            accepted = rng.random() < accept_prob
            if accepted:
                theta, lp = proposal, lp_new

            if it < config.warmup:
                accepted_warmup += int(accepted)
                history.append(theta.copy())
                # Robbins-Monro step on the global scale.
                log_scale += (accept_prob - TARGET_ACCEPT) / math.sqrt(it + 1.0)
                if (it + 1) % ADAPT_EVERY == 0 and len(history) >= 2 * d:
                    recent = np.asarray(history[len(history) // 2 :])
                    emp = np.atleast_2d(np.cov(recent, rowvar=False))
                    cov = emp + np.eye(d) * 1e-8
                chol = self._cholesky(cov * math.exp(log_scale))
            else:
                accepted_kept += int(accepted)
                kept[it - config.warmup] = theta

        stats = {
            "chain": chain_id,
            "accept_rate_warmup": accepted_warmup / max(config.warmup, 1),
            "accept_rate": accepted_kept / config.draws,
            "step_scale": math.exp(0.5 * log_scale),
        }
        return kept, stats

    @staticmethod
    def _cholesky(cov: np.ndarray) -> np.ndarray:
        jitter = 1e-10
        for _ in range(8):
            try:
                return np.linalg.cholesky(cov + np.eye(cov.shape[0]) * jitter)
            except np.linalg.LinAlgError:
                jitter *= 100.0
        return np.diag(np.sqrt(np.clip(np.diag(cov), 1e-12, None)))

    def sample(
        self,
        model: ModelSpec,
        data: ModelData,
        priors: PriorSpec,
        config: SamplerConfig,
        seed: int,
    ) -> PosteriorDraws:
        """Run ``config.chains`` chains and return natural-scale draws."""

        model.check_data(data)
        if model.has_groups:
            self.log.warning("Metropolis on the %s model rarely converges; use the NUTS engine", model.kind)
        start = time.monotonic()
        deadline = start + config.time_budget_s if config.time_budget_s is not None else None
        children = np.random.SeedSequence(int(seed)).spawn(config.chains)

        chains = []
        chain_stats = []
        for c, child in enumerate(children):
            kept, stats = self._run_chain(c + 1, model, data, priors, config, np.random.default_rng(child), deadline)
            chains.append(model.to_natural(kept))
            chain_stats.append(stats)

        samples = np.stack(chains, axis=0)
        elapsed = time.monotonic() - start
        self.log.info(
            "Metropolis chains completed: %d chains x %d draws in %.2fs (mean accept %.2f)",
            config.chains,
            config.draws,
            elapsed,
            float(np.mean([s["accept_rate"] for s in chain_stats])),
        )
        return PosteriorDraws.from_array(
            samples,
            model.parameter_names(data.n_groups),
            sampler_stats={"engine": "metropolis", "elapsed_s": elapsed, "chains": chain_stats},
        )
