from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
import requests

from alpine_chroot_install.config import HostEnvironment
from alpine_chroot_install.lib.command import CmdResult, CommandError
from alpine_chroot_install.lib.env import HostPaths

Handler = Callable[[List[str]], Optional[Tuple[int, str, str]]]


class FakeRunner:
    """Records argv lists; a handler may return (returncode, stdout, stderr)."""

    def __init__(self, handler: Optional[Handler] = None, events: Optional[list] = None) -> None:
        self.calls: List[List[str]] = []
        self.handler = handler
        self.events = events if events is not None else []

    def __call__(self, argv, *, check=True, env=None, cwd=None, input_text=None, capture=True):
        argv = list(argv)
        self.calls.append(argv)
        self.events.append(("cmd", argv))
        outcome = self.handler(argv) if self.handler else None
        rc, out, err = outcome or (0, "", "")
        result = CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)
        if check and rc != 0:
            raise CommandError(result)
        return result

    def find(self, predicate) -> List[List[str]]:
        return [c for c in self.calls if predicate(c)]


class FakeResponse:
    def __init__(self, body: bytes, status: int = 200) -> None:
        self.body = body
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i : i + chunk_size]


class FakeSession:
    def __init__(self, routes: Dict[str, object]) -> None:
        self.routes = routes
        self.requested: List[str] = []

    def get(self, uri, stream=False, timeout=None):
        self.requested.append(uri)
        target = self.routes[uri]
        if isinstance(target, Exception):
            raise target
        if isinstance(target, FakeResponse):
            return target
        return FakeResponse(target)


class FakeInstaller:
    def __init__(self, emulator_dir: Path, version: str = "8.2.2", events: Optional[list] = None) -> None:
        self.emulator_dir = emulator_dir
        self.version = version
        self.calls: List[Tuple[str, str]] = []
        self.events = events if events is not None else []

    def ensure_emulator_installed(self, qemu_arch: str) -> None:
        self.calls.append(("install", qemu_arch))
        self.events.append(("install", qemu_arch))
        self.emulator_dir.mkdir(parents=True, exist_ok=True)
        (self.emulator_dir / f"qemu-{qemu_arch}-static").write_bytes(b"\x7fELF fake qemu")

    def ensure_binfmt_enabled(self, qemu_arch: str) -> None:
        self.calls.append(("binfmt", qemu_arch))
        self.events.append(("binfmt", qemu_arch))


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def host_paths(tmp_path: Path) -> HostPaths:
    resolv = tmp_path / "host" / "resolv.conf"
    resolv.parent.mkdir(parents=True)
    resolv.write_text("nameserver 192.0.2.53\n", encoding="utf-8")
    (tmp_path / "host" / "bin").mkdir()
    (tmp_path / "host" / "binfmt_misc").mkdir()
    return HostPaths(
        resolv_conf=str(resolv),
        emulator_dir=str(tmp_path / "host" / "bin"),
        binfmt_dir=str(tmp_path / "host" / "binfmt_misc"),
        dev_shm=str(tmp_path / "host" / "no-dev-shm"),
        run_shm=str(tmp_path / "host" / "no-run-shm"),
    )


@pytest.fixture
def bind_dir(tmp_path: Path) -> Path:
    d = tmp_path / "work" / "project"
    d.mkdir(parents=True)
    return d


@pytest.fixture
def host(bind_dir: Path) -> HostEnvironment:
    return HostEnvironment(
        euid=0,
        cwd=str(bind_dir),
        machine="x86_64",
        environ={"SUDO_USER": "alice", "SUDO_UID": "1234"},
    )
