from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import EmulatorInstallError
from ..lib.arch import alpine_arch, normalize_arch
from ..lib.emulation import EmulationPlan, resolve_emulation

logger = logging.getLogger(__name__)


def _resolve(ctx) -> EmulationPlan:
    return resolve_emulation(
        ctx.cfg.arch,
        alpine_arch(ctx.host.machine),
        emulator_dir=ctx.paths.emulator_dir,
        binfmt_dir=ctx.paths.binfmt_dir,
        runner=ctx.runner,
    )


class ResolveEmulationStep:
    step_id = "20_resolve_emulation"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        if normalize_arch(ctx.cfg.arch) == normalize_arch(ctx.host.machine):
            return f"{ctx.cfg.arch} runs natively on {ctx.host.machine}"
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        plan = _resolve(ctx)

        if plan.must_install or plan.must_upgrade:
            if plan.must_upgrade:
                logger.info(
                    "%s is %s, need >= %s",
                    plan.emulator_path,
                    plan.installed_version or "unknown",
                    plan.min_version,
                )
            ctx.installer.ensure_emulator_installed(plan.qemu_arch)
            plan = _resolve(ctx)
            if plan.must_install:
                raise EmulatorInstallError(f"{plan.emulator_path} still missing after install")
            if plan.must_upgrade:
                raise EmulatorInstallError(
                    f"{plan.emulator_path} {plan.installed_version or '?'} is older than {plan.min_version}"
                )
        else:
            logger.info("Found %s version %s", plan.emulator_path, plan.installed_version)

        # Independent of whether the binary was just installed.
        if plan.must_enable_binfmt:
            ctx.installer.ensure_binfmt_enabled(plan.qemu_arch)
        else:
            logger.info("binfmt_misc already handles qemu-%s", plan.qemu_arch)

        state["emulation"] = plan
        return state
