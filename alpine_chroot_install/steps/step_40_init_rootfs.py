from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..config import ProvisioningConfig
from ..lib.apk import apk_bootstrap, copy_resolv_conf, import_keys, install_emulator, write_repositories
from ..lib.command import Runner, run_cmd
from ..lib.emulation import EmulationPlan
from ..lib.env import PATHS, HostPaths

logger = logging.getLogger(__name__)


def initialize_root(
    cfg: ProvisioningConfig,
    apk_tool: str,
    keys: Mapping[str, Path],
    *,
    emulation: Optional[EmulationPlan] = None,
    runner: Runner = run_cmd,
    paths: HostPaths = PATHS,
) -> None:
    """Populate the chroot up to a bootstrapped alpine-base.

    Each step depends on the previous one; any failure aborts with the root
    left as-is. Re-running overwrites what was written before.
    """

    root = cfg.chroot_dir
    emulating = emulation is not None and emulation.required

    (Path(root) / "etc/apk").mkdir(parents=True, exist_ok=True)
    write_repositories(root, cfg.mirror, cfg.branch, cfg.extra_repos)
    copy_resolv_conf(root, paths.resolv_conf)
    import_keys(root, keys)

    if emulating:
        # Package triggers run foreign binaries inside the root.
        install_emulator(root, emulation.emulator_path)

    apk_bootstrap(
        apk_tool=apk_tool,
        target_root=root,
        arch=cfg.arch if emulating else None,
        runner=runner,
    )
    logger.info("Alpine %s (%s) bootstrapped at %s", cfg.branch, cfg.arch, root)


class InitRootFSStep:
    step_id = "40_init_rootfs"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        if not state.get("apk_tool"):
            raise RuntimeError("apk_tool missing; run fetch step first")

        initialize_root(
            ctx.cfg,
            state["apk_tool"],
            state.get("keys") or {},
            emulation=state.get("emulation"),
            runner=ctx.runner,
            paths=ctx.paths,
        )
        return state
