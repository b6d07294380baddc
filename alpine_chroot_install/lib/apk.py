from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence

from ..errors import PackageInstallError
from .command import CommandError, Runner, run_cmd

logger = logging.getLogger(__name__)


BASE_PACKAGES = ("alpine-base",)


def branch_path(branch: str) -> str:
    """`3.20` -> `v3.20`; `edge`, `latest-stable` and `v3.20` pass through."""
    branch = branch.strip()
    if branch[:1].isdigit():
        return "v" + branch
    return branch


def repository_lines(mirror: str, branch: str, extra_repos: Sequence[str] = ()) -> List[str]:
    base = f"{mirror.rstrip('/')}/{branch_path(branch)}"
    return [f"{base}/main", f"{base}/community", *extra_repos]


def write_repositories(
    target_root: str,
    mirror: str,
    branch: str,
    extra_repos: Sequence[str] = (),
) -> Path:
    """(Re)write etc/apk/repositories; never appends."""

    p = Path(target_root) / "etc/apk/repositories"
    p.parent.mkdir(parents=True, exist_ok=True)
    lines = repository_lines(mirror, branch, extra_repos)
    p.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Configured apk repositories: %s", ", ".join(lines))
    return p


def copy_resolv_conf(target_root: str, host_resolv_conf: str = "/etc/resolv.conf") -> None:
    dst = Path(target_root) / "etc/resolv.conf"
    dst.parent.mkdir(parents=True, exist_ok=True)
    # Some hosts symlink resolv.conf; a dangling link inside the chroot is useless.
    if dst.is_symlink():
        dst.unlink()
    shutil.copyfile(host_resolv_conf, dst)
    logger.info("Copied %s -> %s", host_resolv_conf, dst)


def import_keys(target_root: str, keys: Mapping[str, Path]) -> List[Path]:
    """Copy verified public keys into etc/apk/keys under their key names."""

    keys_dir = Path(target_root) / "etc/apk/keys"
    keys_dir.mkdir(parents=True, exist_ok=True)
    out = []
    for name, src in keys.items():
        dst = keys_dir / name
        shutil.copyfile(src, dst)
        os.chmod(dst, 0o644)
        out.append(dst)
    logger.info("Imported %d trust keys into %s", len(out), keys_dir)
    return out


def install_emulator(target_root: str, emulator_path: str) -> Path:
    dst = Path(target_root) / emulator_path.lstrip("/")
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(emulator_path, dst)
    logger.info("Copied emulator %s into chroot", emulator_path)
    return dst


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def apk_bootstrap(
    *,
    apk_tool: str,
    target_root: str,
    arch: Optional[str] = None,
    packages: Iterable[str] = BASE_PACKAGES,
    runner: Runner = run_cmd,
) -> None:
    """Initialise the package database under target_root and add base packages.

    arch is passed only when the chroot runs under emulation.
    """

    argv = [apk_tool, "--root", target_root, "--update-cache", "--initdb"]
    if arch:
        argv += ["--arch", arch]
    argv += ["add", *packages]
    try:
        runner(argv, capture=False)
    except CommandError as e:
        raise PackageInstallError(f"apk bootstrap failed in {target_root} (exit {e.result.returncode})") from e
