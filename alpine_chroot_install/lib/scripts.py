from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


ENTER_SCRIPT_NAME = "enter-chroot"
DESTROY_SCRIPT_NAME = "destroy"
ENV_FILE_NAME = "env.sh"

# `export` with no arguments prints `export NAME='value'` in dash/busybox ash
# and `export NAME="value"` (or `declare -x NAME="value"`) in bash.
_ENV_SED = (
    r"""export | sed -En "s/^[^=]+ (${ENV_FILTER_REGEX}=('.*'|\".*\"))\$/export \1/p" """
    r"""> "$tmpfile" || true"""
)


def env_snapshot_lines(env_filter: str) -> List[str]:
    """Shell lines writing the matching exported variables to "$tmpfile"."""

    if not env_filter:
        return [': > "$tmpfile"']
    return [
        f"ENV_FILTER_REGEX={shlex.quote(env_filter)}",
        _ENV_SED,
    ]


def generate_entry_script(env_filter: str, emulator_env: Optional[str] = None) -> str:
    """Build the enter-chroot script.

    The filter and emulator path are fixed now; which variables actually get
    forwarded is decided each time the script runs.
    """

    lines = [
        "#!/bin/sh",
        "# Enters the Alpine chroot with a clean login environment.",
        "# Usage: enter-chroot [-u <user>] [command...]",
        "set -e",
        "",
        "user='root'",
        "if [ $# -ge 2 ] && [ \"$1\" = '-u' ]; then",
        "\tuser=\"$2\"; shift 2",
        "fi",
        "oldpwd=\"$(pwd | sed \"s/'/'\\\\\\\\''/g\")\"",
        "",
        "_sudo=''",
        "[ \"$(id -u)\" -eq 0 ] || _sudo='sudo'",
        "",
    ]
    if emulator_env:
        lines += [f"export QEMU_EMULATOR={shlex.quote(emulator_env)}", ""]
    lines += [
        "tmpfile=\"$(mktemp)\"",
        "chmod 644 \"$tmpfile\"",
        *env_snapshot_lines(env_filter),
        "",
        "cd \"$(dirname \"$0\")\"",
        f"$_sudo mv \"$tmpfile\" {ENV_FILE_NAME}",
        "exec $_sudo chroot . /usr/bin/env -i su -l \"$user\" \\",
        f"\tsh -c \". /etc/profile; . /{ENV_FILE_NAME}; cd '$oldpwd' 2>/dev/null; \\\"\\$@\\\"\" \\",
        "\t-- \"${@:-sh}\"",
        "",
    ]
    return "\n".join(lines)


def generate_destroy_script() -> str:
    """Build the destroy script: unmount everything under the chroot, deepest first.

    `destroy --remove` also deletes the chroot, but only once nothing is
    mounted inside it any more (the bind dir is a live host directory).
    """

    return "\n".join(
        [
            "#!/bin/sh",
            "# Unmounts everything bound into this chroot.",
            "# Usage: destroy [--remove]",
            "set -e",
            "",
            "SCRIPT_DIR=\"$(cd \"$(dirname \"$0\")\" && pwd -P)\"",
            "",
            "_sudo=''",
            "[ \"$(id -u)\" -eq 0 ] || _sudo='sudo'",
            "",
            "mounts() {",
            "\tcut -d' ' -f2 /proc/mounts | grep \"^$SCRIPT_DIR/\" | sort -r",
            "}",
            "",
            "mounts | while read -r path; do",
            "\techo \"Unmounting $path\" >&2",
            "\t$_sudo umount -fn \"$path\" || $_sudo umount -ln \"$path\"",
            "done",
            "",
            "if [ \"$1\" = '--remove' ]; then",
            "\tif [ -n \"$(mounts)\" ]; then",
            "\t\techo \"Mounts still active under $SCRIPT_DIR, not removing it\" >&2",
            "\t\texit 1",
            "\tfi",
            "\t$_sudo rm -Rf \"$SCRIPT_DIR\"",
            "fi",
            "",
        ]
    )


def write_script(path: str | Path, contents: str) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(contents, encoding="utf-8")
    p.chmod(0o755)
    logger.info("Wrote %s", p)
    return p
