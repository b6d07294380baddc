from __future__ import annotations

import os
import shutil
import stat
import subprocess

import pytest

from alpine_chroot_install.lib.scripts import (
    env_snapshot_lines,
    generate_destroy_script,
    generate_entry_script,
    write_script,
)

needs_sh = pytest.mark.skipif(
    shutil.which("sh") is None or shutil.which("sed") is None, reason="needs a POSIX sh and sed"
)


def _snapshot(tmp_path, env_filter, extra_env):
    out = tmp_path / "env.sh"
    script = "\n".join(["set -e", 'tmpfile="$OUT"', *env_snapshot_lines(env_filter)])
    env = {"PATH": os.environ.get("PATH", "/usr/bin:/bin"), "OUT": str(out), **extra_env}
    subprocess.run(["sh", "-c", script], env=env, check=True)
    return out


def _source(env_file, name):
    r = subprocess.run(
        ["sh", "-c", f'. "$1"; printf %s "${name}"', "sh", str(env_file)],
        env={"PATH": os.environ.get("PATH", "/usr/bin:/bin")},
        check=True,
        capture_output=True,
        text=True,
    )
    return r.stdout


def test_entry_script_shape():
    text = generate_entry_script("(ARCH|CI|TRAVIS_.*)")
    assert text.startswith("#!/bin/sh\n")
    assert "set -e" in text
    assert "ENV_FILTER_REGEX='(ARCH|CI|TRAVIS_.*)'" in text
    assert "if [ $# -ge 2 ] && [ \"$1\" = '-u' ]; then" in text
    assert "chmod 644 \"$tmpfile\"" in text
    assert "$_sudo mv \"$tmpfile\" env.sh" in text
    assert "chroot . /usr/bin/env -i su -l \"$user\"" in text
    assert ". /etc/profile; . /env.sh;" in text
    assert '-- "${@:-sh}"' in text
    assert "QEMU_EMULATOR" not in text


def test_entry_script_exports_emulator_before_login():
    text = generate_entry_script("(ARCH)", "/usr/bin/qemu-arm-static")
    export_at = text.index("export QEMU_EMULATOR=/usr/bin/qemu-arm-static")
    assert export_at < text.index("tmpfile=")
    assert export_at < text.index("chroot .")


def test_empty_filter_writes_empty_env_file_statement():
    text = generate_entry_script("")
    assert "ENV_FILTER_REGEX" not in text
    assert ': > "$tmpfile"' in text


def test_write_script_is_executable(tmp_path):
    p = write_script(tmp_path / "root" / "enter-chroot", generate_entry_script("(CI)"))
    assert stat.S_IMODE(p.stat().st_mode) == 0o755


def test_destroy_script_unmounts_deepest_first_and_guards_removal():
    text = generate_destroy_script()
    assert "/proc/mounts" in text
    assert "sort -r" in text
    assert "umount" in text
    assert "--remove" in text
    # Removal only happens after the still-mounted check.
    assert text.index('if [ -n "$(mounts)" ]') < text.index("rm -Rf")


@needs_sh
def test_empty_filter_preserves_no_variables(tmp_path):
    out = _snapshot(tmp_path, "", {"CI": "true", "ARCH": "armv7"})
    assert out.read_text() == ""


@needs_sh
def test_matching_variable_roundtrips_with_quoting(tmp_path):
    value = "it's \"quoted\" $HOME and `ticks`"
    out = _snapshot(tmp_path, "(KEEP_ME|TRAVIS_.*)", {"KEEP_ME": value, "KEEP_ME_TOO": "no", "OTHER": "no"})
    text = out.read_text()
    assert "KEEP_ME_TOO" not in text
    assert "OTHER" not in text
    assert _source(out, "KEEP_ME") == value


@needs_sh
def test_wildcard_patterns_match_prefixes(tmp_path):
    out = _snapshot(tmp_path, "(TRAVIS_.*)", {"TRAVIS_BRANCH": "main", "TRAVIS": "true"})
    assert _source(out, "TRAVIS_BRANCH") == "main"
    assert "TRAVIS=" not in out.read_text()


# Stands in for `chroot <dir> /usr/bin/env -i su -l <user> sh -c <cmd> -- args...`:
# records the user, then runs the login command with / mapped to <dir>.
_CHROOT_SHIM = r"""#!/bin/sh
root="$1"; shift
[ "$1" = /usr/bin/env ] && [ "$2" = -i ] && [ "$3" = su ] && [ "$4" = -l ] || exit 97
printf '%s\n' "$5" > "$LOG/user"
shift 5
[ "$1" = sh ] && [ "$2" = -c ] || exit 98
cmd="$(printf '%s' "$3" | sed "s#\. /#. $root/#g")"
shift 3
exec sh -c "$cmd" "$@"
"""

_RECORD = r"""#!/bin/sh
pwd -P > "$LOG/cwd"
: > "$LOG/argv"
for a in "$@"; do printf '%s\n' "$a" >> "$LOG/argv"; done
"""


@pytest.fixture
def enter_chroot(tmp_path):
    root = tmp_path / "root"
    (root / "etc").mkdir(parents=True)
    (root / "etc" / "profile").write_text("", encoding="utf-8")
    script = write_script(root / "enter-chroot", generate_entry_script(""))

    shims = tmp_path / "shims"
    shims.mkdir()
    write_script(shims / "chroot", _CHROOT_SHIM)
    write_script(shims / "sudo", '#!/bin/sh\nexec "$@"\n')
    write_script(shims / "record", _RECORD)

    log = tmp_path / "log"
    log.mkdir()
    env = {"PATH": f"{shims}{os.pathsep}{os.environ.get('PATH', '/usr/bin:/bin')}", "LOG": str(log)}

    def _enter(*args, cwd=None, stdin=None):
        subprocess.run(
            [str(script), *args],
            env=env,
            cwd=str(cwd or tmp_path),
            input=stdin,
            text=True,
            check=True,
            timeout=30,
        )
        return {
            "user": (log / "user").read_text().strip(),
            "argv": (log / "argv").read_text().splitlines(),
            "cwd": (log / "cwd").read_text().strip(),
        }

    return _enter


needs_shell_tools = pytest.mark.skipif(
    any(shutil.which(t) is None for t in ("sh", "sed", "mktemp", "id", "dirname")),
    reason="needs a POSIX userland",
)


@needs_shell_tools
def test_enter_chroot_passes_arguments_intact(enter_chroot):
    args = ["two words", "it's", 'say "hi"', "$HOME", "-u", "*"]
    out = enter_chroot("record", *args)
    assert out["user"] == "root"
    assert out["argv"] == args


@needs_shell_tools
def test_enter_chroot_takes_user_from_leading_flag_only(enter_chroot):
    out = enter_chroot("-u", "alice", "record", "-u", "bob")
    assert out["user"] == "alice"
    assert out["argv"] == ["-u", "bob"]

    out = enter_chroot("record", "-u", "bob")
    assert out["user"] == "root"
    assert out["argv"] == ["-u", "bob"]


@needs_shell_tools
def test_enter_chroot_defaults_to_a_shell(enter_chroot):
    out = enter_chroot(stdin="record from-stdin\n")
    assert out["argv"] == ["from-stdin"]


@needs_shell_tools
def test_enter_chroot_keeps_cwd_with_quotes(tmp_path, enter_chroot):
    odd = tmp_path / "it's a \"dir\""
    odd.mkdir()
    out = enter_chroot("record", cwd=odd)
    assert out["cwd"] == os.path.realpath(odd)
