from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import PrivilegeError

logger = logging.getLogger(__name__)


class CheckPrivilegeStep:
    step_id = "10_check_privilege"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        # Mounting, chroot and writing under / all need root; fail before touching anything.
        if ctx.host.euid != 0:
            raise PrivilegeError("This script must be run as root (try sudo)")
        if ctx.cfg.sudo_user:
            logger.info("Invoked via sudo by %s (uid=%s)", ctx.cfg.sudo_user, ctx.cfg.sudo_uid)
        return state
