from __future__ import annotations

import re
from typing import Tuple

from ..errors import ConfigError

# Architectures Alpine publishes apk-tools and repositories for.
SUPPORTED_ARCHES = (
    "x86_64",
    "x86",
    "aarch64",
    "armhf",
    "armv7",
    "ppc64le",
    "s390x",
    "riscv64",
    "loongarch64",
)

# Alias -> emulation family. armhf and armv7 run under the same qemu-arm.
_FAMILIES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x86": "x86",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armhf": "arm",
    "armel": "arm",
    "armv6": "arm",
    "armv6l": "arm",
    "armv7": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "arm": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "loongarch64": "loongarch64",
}

# uname -m -> Alpine arch name, for the default target.
_HOST_TO_ALPINE = {
    "amd64": "x86_64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "arm64": "aarch64",
    "armv6l": "armhf",
    "armv7l": "armv7",
    "armv8l": "armv7",
}


def normalize_arch(name: str) -> str:
    key = (name or "").strip().lower()
    family = _FAMILIES.get(key)
    if family is None:
        raise ConfigError(f"Unknown architecture: {name!r}")
    return family


def alpine_arch(machine: str) -> str:
    """Map a host `uname -m` to the Alpine architecture name."""
    key = (machine or "").strip().lower()
    return _HOST_TO_ALPINE.get(key, key)


def qemu_arch(family: str) -> str:
    # qemu names the 32-bit x86 user emulator after i386.
    return "i386" if family == "x86" else family


def parse_version(text: str) -> Tuple[int, ...]:
    parts = []
    for seg in text.strip().split("."):
        m = re.match(r"\d+", seg)
        if m is None:
            raise ValueError(f"Not a dotted numeric version: {text!r}")
        parts.append(int(m.group(0)))
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1. Segments compare numerically; missing ones are 0."""

    va = parse_version(a)
    vb = parse_version(b)
    width = max(len(va), len(vb))
    va = va + (0,) * (width - len(va))
    vb = vb + (0,) * (width - len(vb))
    return (va > vb) - (va < vb)
