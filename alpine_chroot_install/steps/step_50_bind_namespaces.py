from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..lib.chroot import bind_namespaces, chroot_bindings

logger = logging.getLogger(__name__)


class BindNamespacesStep:
    step_id = "50_bind_namespaces"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        bindings = chroot_bindings(
            ctx.cfg.bind_dir,
            dev_shm=ctx.paths.dev_shm,
            run_shm=ctx.paths.run_shm,
        )
        mounted = bind_namespaces(
            ctx.cfg.chroot_dir,
            bindings,
            runner=ctx.runner,
            is_mounted=ctx.is_mounted,
        )
        logger.info("Bound %d of %d mounts into %s", len(mounted), len(bindings), ctx.cfg.chroot_dir)
        state["mounts"] = [b.target for b in bindings]
        return state
