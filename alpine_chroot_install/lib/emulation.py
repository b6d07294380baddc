from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ..errors import BinfmtError, EmulatorInstallError
from .arch import compare_versions, normalize_arch, qemu_arch
from .command import CommandError, Runner, run_cmd

logger = logging.getLogger(__name__)


DEFAULT_MIN_QEMU_VERSION = "2.6"
EMULATOR_DIR = "/usr/bin"
BINFMT_DIR = "/proc/sys/fs/binfmt_misc"

_VERSION_RE = re.compile(r"version\s+(\d+(?:\.\d+)*)")


@dataclass(frozen=True)
class EmulationPlan:
    target_arch: str
    host_arch: str
    qemu_arch: Optional[str] = None
    emulator_path: Optional[str] = None
    min_version: Optional[str] = None
    installed_version: Optional[str] = None
    must_install: bool = False
    must_upgrade: bool = False
    must_enable_binfmt: bool = False

    @property
    def required(self) -> bool:
        return self.qemu_arch is not None


def emulator_version(path: str, *, runner: Runner = run_cmd) -> Optional[str]:
    """Return the version reported by `<emulator> --version`, if parsable."""

    try:
        r = runner([path, "--version"])
    except CommandError as e:
        logger.warning("Could not query %s version: %s", path, e)
        return None
    m = _VERSION_RE.search(r.stdout)
    return m.group(1) if m else None


def binfmt_registered(qarch: str, *, binfmt_dir: str = BINFMT_DIR) -> bool:
    return (Path(binfmt_dir) / f"qemu-{qarch}").exists()


def resolve_emulation(
    target_arch: str,
    host_arch: str,
    *,
    min_version: str = DEFAULT_MIN_QEMU_VERSION,
    emulator_dir: str = EMULATOR_DIR,
    binfmt_dir: str = BINFMT_DIR,
    runner: Runner = run_cmd,
) -> EmulationPlan:
    """Decide whether QEMU is needed and what is missing on the host.

    The three signals (install, upgrade, binfmt) are independent. Nothing on
    the host is probed when no emulation is needed.
    """

    target = normalize_arch(target_arch)
    host = normalize_arch(host_arch)
    if target == host:
        return EmulationPlan(target_arch=target_arch, host_arch=host_arch)

    qarch = qemu_arch(target)
    path = str(Path(emulator_dir) / f"qemu-{qarch}-static")

    must_install = not Path(path).exists()
    installed = None
    must_upgrade = False
    if not must_install:
        installed = emulator_version(path, runner=runner)
        if installed is None:
            logger.warning("Unrecognised version output from %s; treating as too old", path)
            must_upgrade = True
        elif compare_versions(installed, min_version) < 0:
            must_upgrade = True

    plan = EmulationPlan(
        target_arch=target_arch,
        host_arch=host_arch,
        qemu_arch=qarch,
        emulator_path=path,
        min_version=min_version,
        installed_version=installed,
        must_install=must_install,
        must_upgrade=must_upgrade,
        must_enable_binfmt=not binfmt_registered(qarch, binfmt_dir=binfmt_dir),
    )
    logger.info(
        "Emulation required: %s on %s via %s (install=%s upgrade=%s binfmt=%s)",
        target_arch,
        host_arch,
        path,
        plan.must_install,
        plan.must_upgrade,
        plan.must_enable_binfmt,
    )
    return plan


class EmulationInstaller(Protocol):
    """Host capability: provide qemu-<arch>-static and its binfmt entry."""

    def ensure_emulator_installed(self, qemu_arch: str) -> None:
        ...

    def ensure_binfmt_enabled(self, qemu_arch: str) -> None:
        ...


class AptEmulationInstaller:
    """Debian/Ubuntu host: qemu-user-static + binfmt-support via apt."""

    def __init__(self, *, runner: Runner = run_cmd) -> None:
        self.runner = runner

    def ensure_emulator_installed(self, qemu_arch: str) -> None:
        logger.info("Installing qemu-user-static for %s", qemu_arch)
        try:
            self.runner(["apt-get", "update"])
            self.runner(
                ["apt-get", "install", "-y", "--no-install-recommends", "qemu-user-static", "binfmt-support"],
                env={"DEBIAN_FRONTEND": "noninteractive"},
            )
        except (CommandError, OSError) as e:
            raise EmulatorInstallError(f"Failed to install qemu-user-static: {e}") from e

    def ensure_binfmt_enabled(self, qemu_arch: str) -> None:
        logger.info("Enabling binfmt support for qemu-%s", qemu_arch)
        try:
            self.runner(["update-binfmts", "--enable", f"qemu-{qemu_arch}"])
        except (CommandError, OSError) as e:
            raise BinfmtError(f"Failed to enable binfmt for qemu-{qemu_arch}: {e}") from e
