from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HostPaths:
    """Host locations the installer reads; tests point these at tmp dirs."""

    resolv_conf: str = "/etc/resolv.conf"
    emulator_dir: str = "/usr/bin"
    binfmt_dir: str = "/proc/sys/fs/binfmt_misc"
    dev_shm: str = "/dev/shm"
    run_shm: str = "/run/shm"


PATHS = HostPaths()
