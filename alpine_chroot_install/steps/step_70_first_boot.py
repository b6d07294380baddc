from __future__ import annotations

import logging
import shlex
from typing import Any, Dict, Optional, Sequence

from ..errors import PackageInstallError, UserProvisionError
from ..lib.command import CommandError, Runner

logger = logging.getLogger(__name__)


DEFAULT_UID = 1000


def first_boot_script(packages: Sequence[str]) -> str:
    lines = ["apk update"]
    if packages:
        lines.append("apk add " + " ".join(shlex.quote(p) for p in packages))
    lines += [
        "if [ -d /etc/sudoers.d ] && [ ! -e /etc/sudoers.d/wheel ]; then",
        "\techo '%wheel ALL=(ALL) NOPASSWD: ALL' > /etc/sudoers.d/wheel",
        "fi",
    ]
    return "\n".join(lines) + "\n"


def create_user(runner: Runner, enter_script: str, username: str, uid: Optional[int]) -> None:
    """adduser inside the chroot; raises UserProvisionError on failure."""

    r = runner(
        [
            enter_script,
            "adduser",
            "-u",
            str(uid if uid is not None else DEFAULT_UID),
            "-G",
            "users",
            "-s",
            "/bin/sh",
            "-D",
            username,
        ],
        check=False,
    )
    if r.returncode == 0:
        logger.info("Created user %s in chroot", username)
        return

    exists = runner([enter_script, "id", "-u", username], check=False).returncode == 0
    raise UserProvisionError(
        f"adduser {username} exited {r.returncode}"
        + (" (account already exists)" if exists else f": {r.stderr.strip()}")
    )


class FirstBootStep:
    step_id = "70_first_boot"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        enter = state.get("enter_script")
        if not enter:
            raise RuntimeError("enter_script missing; run write-scripts step first")

        try:
            ctx.runner([enter, "sh", "-e", "-c", first_boot_script(ctx.cfg.packages)], capture=False)
        except CommandError as e:
            raise PackageInstallError(f"First boot setup failed in chroot (exit {e.result.returncode})") from e

        user = ctx.cfg.sudo_user
        if user:
            try:
                create_user(ctx.runner, enter, user, ctx.cfg.sudo_uid)
            except UserProvisionError as e:
                logger.warning("Ignoring user creation failure: %s", e)
        return state
