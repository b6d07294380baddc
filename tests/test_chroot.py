from __future__ import annotations

import pytest

from alpine_chroot_install.errors import MountError
from alpine_chroot_install.lib.chroot import MountBinding, bind_namespaces, chroot_bindings

from conftest import FakeRunner


def test_binding_order(tmp_path):
    bindings = chroot_bindings("/home/me/src", dev_shm=str(tmp_path / "nope"))
    assert [b.target for b in bindings] == ["proc", "sys", "dev", "home/me/src"]
    assert bindings[0].fstype == "proc"
    assert bindings[1].recursive and bindings[2].recursive
    assert not bindings[3].recursive


def test_run_shm_bound_when_dev_shm_is_a_symlink(tmp_path):
    run_shm = tmp_path / "run" / "shm"
    run_shm.mkdir(parents=True)
    dev_shm = tmp_path / "dev-shm"
    dev_shm.symlink_to(run_shm)
    bindings = chroot_bindings("/work", dev_shm=str(dev_shm), run_shm=str(run_shm))
    assert [b.source for b in bindings][3] == str(run_shm)
    assert bindings[-1].source == "/work"


def test_mounts_in_order_and_creates_targets(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    root = tmp_path / "root"
    bindings = [
        MountBinding(source="none", target="proc", fstype="proc"),
        MountBinding(source=str(src), target=str(src).lstrip("/")),
    ]
    runner = FakeRunner()
    mounted = bind_namespaces(str(root), bindings, runner=runner, is_mounted=lambda p: False)
    assert mounted == bindings
    assert (root / "proc").is_dir()
    assert (root / str(src).lstrip("/")).is_dir()
    assert runner.calls == [
        ["mount", "-v", "-t", "proc", "none", str(root / "proc")],
        ["mount", "-v", "--bind", str(src), str(root / str(src).lstrip("/"))],
        ["mount", "--make-private", str(root / str(src).lstrip("/"))],
    ]


def test_existing_target_dir_is_fine(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    root = tmp_path / "root"
    (root / "dev").mkdir(parents=True)
    runner = FakeRunner()
    bind_namespaces(
        str(root), [MountBinding(source=str(src), target="dev", recursive=True)], runner=runner, is_mounted=lambda p: False
    )
    assert runner.calls[0][:3] == ["mount", "-v", "--rbind"]
    assert runner.calls[1][:2] == ["mount", "--make-rprivate"]


def test_missing_source_fails(tmp_path):
    with pytest.raises(MountError):
        bind_namespaces(
            str(tmp_path / "root"),
            [MountBinding(source=str(tmp_path / "absent"), target="x")],
            runner=FakeRunner(),
            is_mounted=lambda p: False,
        )


def test_already_mounted_targets_are_skipped(tmp_path):
    root = tmp_path / "root"
    runner = FakeRunner()
    proc = MountBinding(source="none", target="proc", fstype="proc")
    mounted = bind_namespaces(str(root), [proc], runner=runner, is_mounted=lambda p: p.endswith("/proc"))
    assert mounted == []
    assert runner.calls == []


def test_mount_failure_is_mount_error(tmp_path):
    runner = FakeRunner(lambda argv: (32, "", "mount: permission denied"))
    with pytest.raises(MountError):
        bind_namespaces(
            str(tmp_path / "root"),
            [MountBinding(source="none", target="proc", fstype="proc")],
            runner=runner,
            is_mounted=lambda p: False,
        )
