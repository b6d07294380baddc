from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import requests

from .config import HostEnvironment, ProvisioningConfig
from .lib.command import Runner, run_cmd
from .lib.emulation import EmulationInstaller
from .lib.env import PATHS, HostPaths

logger = logging.getLogger(__name__)


@dataclass
class ProvisionCtx:
    """Everything a step may touch; side-effecting collaborators are injectable."""

    cfg: ProvisioningConfig
    host: HostEnvironment
    installer: EmulationInstaller
    runner: Runner = run_cmd
    session: Optional[requests.Session] = None
    paths: HostPaths = PATHS
    is_mounted: Callable[[str], bool] = field(default=os.path.ismount)


class Step(Protocol):
    """A single idempotent step."""

    step_id: str

    def skip_reason(self, ctx: ProvisionCtx, state: Dict[str, Any]) -> Optional[str]:
        ...

    def run(self, ctx: ProvisionCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]


def run_pipeline(
    *,
    ctx: ProvisionCtx,
    steps: Sequence[Step],
    state: Optional[Dict[str, Any]] = None,
) -> PipelineResult:
    """Run steps in order; the first exception aborts the run.

    There is no rollback. Every step is safe to repeat, so recovering from a
    failure means running the whole pipeline again.
    """

    state = state if state is not None else {}
    ran: List[str] = []
    skipped: List[str] = []

    for step in steps:
        state["current_step"] = step.step_id

        reason = step.skip_reason(ctx, state)
        if reason:
            logger.info("Skipping step %s (%s)", step.step_id, reason)
            skipped.append(step.step_id)
            continue

        logger.info("Running step %s", step.step_id)
        state = step.run(ctx, state)
        ran.append(step.step_id)

    state["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped)
