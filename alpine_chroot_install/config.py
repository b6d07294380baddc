from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .lib.arch import SUPPORTED_ARCHES, alpine_arch

logger = logging.getLogger(__name__)


DEFAULT_BRANCH = "latest-stable"
DEFAULT_CHROOT_DIR = "/alpine"
DEFAULT_MIRROR = "http://dl-cdn.alpinelinux.org/alpine"
DEFAULT_PACKAGES = ("build-base", "ca-certificates", "ssl_client")
DEFAULT_KEEP_VARS = ("ARCH", "CI", "QEMU_EMULATOR", "TRAVIS_.*")

# Single-value settings: name in YAML / CLI dest -> environment variable.
SCALAR_ENV = {
    "arch": "ARCH",
    "branch": "ALPINE_BRANCH",
    "chroot_dir": "CHROOT_DIR",
    "bind_dir": "BIND_DIR",
    "mirror": "ALPINE_MIRROR",
    "temp_dir": "TEMP_DIR",
}

# List settings: whitespace separated in the environment, appended to by flags.
LIST_ENV = {
    "keep_vars": "CHROOT_KEEP_VARS",
    "packages": "ALPINE_PACKAGES",
    "extra_repos": "EXTRA_REPOS",
}


@dataclass(frozen=True)
class HostEnvironment:
    """Snapshot of the ambient process state, taken once at startup."""

    euid: int
    cwd: str
    machine: str
    environ: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def capture(cls) -> "HostEnvironment":
        return cls(
            euid=os.geteuid(),
            cwd=os.getcwd(),
            machine=platform.machine(),
            environ=dict(os.environ),
        )

    @property
    def sudo_user(self) -> Optional[str]:
        user = (self.environ.get("SUDO_USER") or "").strip()
        if not user or user == "root":
            return None
        return user

    @property
    def sudo_uid(self) -> Optional[int]:
        raw = (self.environ.get("SUDO_UID") or "").strip()
        return int(raw) if raw.isdigit() else None


@dataclass(frozen=True)
class ProvisioningConfig:
    arch: str
    branch: str
    chroot_dir: str
    bind_dir: str
    keep_vars: Tuple[str, ...]
    mirror: str
    packages: Tuple[str, ...]
    extra_repos: Tuple[str, ...]
    temp_dir: Optional[str]
    sudo_user: Optional[str] = None
    sudo_uid: Optional[int] = None
    artifacts: Mapping[str, Any] = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return Path(self.chroot_dir)

    @property
    def env_filter(self) -> str:
        """Extended regex alternation matching the variable names to keep."""
        if not self.keep_vars:
            return ""
        return "(" + "|".join(self.keep_vars) + ")"


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")
    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("config file must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")
    return raw


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        out: List[str] = []
        for v in value:
            out.extend(str(v).split())
        return out
    raise ConfigError(f"Expected a list or whitespace separated string, got {type(value).__name__}")


def _overlaps(a: Path, b: Path) -> bool:
    return a == b or a in b.parents or b in a.parents


def resolve_config(
    host: HostEnvironment,
    *,
    flags: Optional[Mapping[str, Any]] = None,
    file_values: Optional[Mapping[str, Any]] = None,
) -> ProvisioningConfig:
    """Merge defaults < config file < environment < flags and validate.

    Single-value flags replace lower layers. List flags (keep_vars, packages,
    extra_repos) append to whatever the lower layers produced.
    """

    flags = flags or {}
    file_values = file_values or {}

    values: Dict[str, Any] = {
        "arch": None,
        "branch": DEFAULT_BRANCH,
        "chroot_dir": DEFAULT_CHROOT_DIR,
        "bind_dir": host.cwd,
        "mirror": DEFAULT_MIRROR,
        "temp_dir": None,
        "keep_vars": list(DEFAULT_KEEP_VARS),
        "packages": list(DEFAULT_PACKAGES),
        "extra_repos": [],
    }

    for key in SCALAR_ENV:
        if file_values.get(key):
            values[key] = str(file_values[key])
    for key in LIST_ENV:
        if key in file_values:
            values[key] = _as_list(file_values[key])

    for key, env_name in SCALAR_ENV.items():
        if host.environ.get(env_name):
            values[key] = host.environ[env_name]
    for key, env_name in LIST_ENV.items():
        if env_name in host.environ:
            values[key] = _as_list(host.environ[env_name])

    for key in SCALAR_ENV:
        if flags.get(key):
            values[key] = str(flags[key])
    for key in LIST_ENV:
        extra = flags.get(key)
        if extra:
            values[key] = values[key] + _as_list(extra)

    arch = values["arch"] or alpine_arch(host.machine)
    if arch not in SUPPORTED_ARCHES:
        raise ConfigError(
            f"Unsupported architecture: {arch} (supported: {', '.join(SUPPORTED_ARCHES)})"
        )

    chroot_dir = Path(values["chroot_dir"])
    if not chroot_dir.is_absolute():
        chroot_dir = Path(host.cwd) / chroot_dir

    bind_dir = Path(values["bind_dir"])
    if not bind_dir.is_absolute():
        raise ConfigError(f"Bind directory must be an absolute path: {bind_dir}")
    if not bind_dir.is_dir():
        raise ConfigError(f"Bind directory does not exist: {bind_dir}")

    temp_dir: Optional[str] = None
    if values["temp_dir"]:
        temp_path = Path(values["temp_dir"])
        if not temp_path.is_absolute():
            temp_path = Path(host.cwd) / temp_path
        if _overlaps(chroot_dir, temp_path):
            raise ConfigError(f"Temp directory {temp_path} overlaps chroot directory {chroot_dir}")
        temp_dir = str(temp_path)

    artifacts: Dict[str, Any] = dict(file_values.get("artifacts") or {})
    apk_override = {
        attr: host.environ[env_name]
        for env_name, attr in (("APK_TOOLS_URI", "uri"), ("APK_TOOLS_SHA256", "sha256"))
        if host.environ.get(env_name)
    }
    if apk_override:
        artifacts["apk_tools"] = dict(artifacts.get("apk_tools") or {}, **apk_override)

    cfg = ProvisioningConfig(
        arch=arch,
        branch=str(values["branch"]),
        chroot_dir=str(chroot_dir),
        bind_dir=str(bind_dir),
        keep_vars=tuple(values["keep_vars"]),
        mirror=str(values["mirror"]).rstrip("/"),
        packages=tuple(values["packages"]),
        extra_repos=tuple(values["extra_repos"]),
        temp_dir=temp_dir,
        sudo_user=host.sudo_user,
        sudo_uid=host.sudo_uid,
        artifacts=artifacts,
    )
    logger.debug("Resolved configuration: %s", cfg)
    return cfg

