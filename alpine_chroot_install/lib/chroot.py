from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import MountError
from .command import CommandError, Runner, run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MountBinding:
    source: str
    target: str  # relative to the chroot
    recursive: bool = False
    fstype: Optional[str] = None

    def mount_argv(self, target_root: str) -> List[str]:
        dst = str(Path(target_root) / self.target)
        if self.fstype:
            return ["mount", "-v", "-t", self.fstype, self.source, dst]
        return ["mount", "-v", "--rbind" if self.recursive else "--bind", self.source, dst]

    def private_argv(self, target_root: str) -> Optional[List[str]]:
        if self.fstype:
            return None
        dst = str(Path(target_root) / self.target)
        return ["mount", "--make-rprivate" if self.recursive else "--make-private", dst]


def chroot_bindings(
    bind_dir: str,
    *,
    dev_shm: str = "/dev/shm",
    run_shm: str = "/run/shm",
) -> List[MountBinding]:
    """Mounts in the order they must be made.

    proc, sys and dev come before anything runs inside the root. Some hosts
    (older Ubuntu) symlink /dev/shm to /run/shm, so that target is bound too.
    """

    out = [
        MountBinding(source="none", target="proc", fstype="proc"),
        MountBinding(source="/sys", target="sys", recursive=True),
        MountBinding(source="/dev", target="dev", recursive=True),
    ]
    if os.path.islink(dev_shm) and os.path.isdir(run_shm):
        out.append(MountBinding(source=run_shm, target=run_shm.lstrip("/"), recursive=True))
    out.append(MountBinding(source=bind_dir, target=bind_dir.lstrip("/")))
    return out


def bind_namespaces(
    target_root: str,
    bindings: List[MountBinding],
    *,
    runner: Runner = run_cmd,
    is_mounted: Callable[[str], bool] = os.path.ismount,
) -> List[MountBinding]:
    """Mount bindings into target_root in order; returns the ones mounted now.

    Mount points are created as needed. A target that is already a mount point
    is left alone so that re-runs never stack mounts.
    """

    mounted: List[MountBinding] = []
    for b in bindings:
        if b.fstype is None and not Path(b.source).exists():
            raise MountError(f"Bind source does not exist: {b.source}")

        dst = Path(target_root) / b.target
        if is_mounted(str(dst)):
            logger.info("Already mounted: %s", dst)
            continue

        dst.mkdir(parents=True, exist_ok=True)
        try:
            runner(b.mount_argv(target_root))
            private = b.private_argv(target_root)
            if private:
                runner(private)
        except CommandError as e:
            raise MountError(f"Failed to mount {b.source} on {dst}: {e}") from e
        mounted.append(b)
    return mounted
