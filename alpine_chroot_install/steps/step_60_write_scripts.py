from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..lib.scripts import (
    DESTROY_SCRIPT_NAME,
    ENTER_SCRIPT_NAME,
    generate_destroy_script,
    generate_entry_script,
    write_script,
)

logger = logging.getLogger(__name__)


class WriteScriptsStep:
    step_id = "60_write_scripts"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        root = Path(ctx.cfg.chroot_dir)
        plan = state.get("emulation")
        emulator = plan.emulator_path if plan is not None and plan.required else None

        enter = write_script(root / ENTER_SCRIPT_NAME, generate_entry_script(ctx.cfg.env_filter, emulator))
        write_script(root / DESTROY_SCRIPT_NAME, generate_destroy_script())

        state["enter_script"] = str(enter)
        return state
