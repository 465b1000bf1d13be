"""
Runtime invariant enforcement for kernel calls and recovery trials.

Fail-closed: any violated invariant raises the typed error immediately. When
a trial context is active, pass/fail records are kept on it and error
payloads are stamped with the trial index, seed and config hash.
"""

from __future__ import annotations

import hashlib
import json
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

from .errors import IsdBayesError


@dataclass
class InvariantRecord:
    invariant_id: str
    status: str  # "pass" or "fail"
    detail: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrialContext:
    """Holds the per-trial invariant log."""

    scenario_name: Optional[str]
    trial_index: Optional[int]
    run_seed: Optional[int]
    config_hash: Optional[str]
    record_passes: bool = False
    invariant_log: list = field(default_factory=list)

    def record_invariant(self, rec: InvariantRecord) -> None:
        self.invariant_log.append(rec)

    def failures(self) -> list:
        return [r for r in self.invariant_log if r.status == "fail"]


_ctx: ContextVar[Optional[TrialContext]] = ContextVar("trial_ctx", default=None)


def set_trial_context(ctx: Optional[TrialContext]):
    return _ctx.set(ctx)


def reset_trial_context(token) -> None:
    _ctx.reset(token)


def current_context() -> Optional[TrialContext]:
    return _ctx.get()


def _build_data(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    ctx = current_context()
    data = dict(extra or {})
    if ctx:
        data.setdefault("scenario_name", ctx.scenario_name)
        data.setdefault("trial_index", ctx.trial_index)
        data.setdefault("run_seed", ctx.run_seed)
        data.setdefault("config_hash", ctx.config_hash)
    return data


def require(
    condition: bool,
    error_cls: Type[IsdBayesError],
    error_id: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """Assert an invariant, record its status, and raise ``error_cls`` on violation."""

    ctx = current_context()
    if condition:
        # Kernel checks run inside the sampler loop; passes are opt-in.
        if ctx and ctx.record_passes:
            ctx.record_invariant(InvariantRecord(error_id, "pass", detail=message))
        return
    payload = _build_data(data)
    if ctx:
        ctx.record_invariant(InvariantRecord(error_id, "fail", detail=message, data=payload))
    raise error_cls(error_id, message, data=payload)


def stable_config_hash(cfg: Dict) -> str:
    """Deterministic hash for config snapshots."""

    payload = json.dumps(cfg, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()
