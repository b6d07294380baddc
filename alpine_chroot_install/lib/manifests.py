from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..errors import ConfigError
from .fetch import TrustedArtifact


def _manifests_dir() -> Path:
    # alpine_chroot_install/lib/manifests.py -> alpine_chroot_install/manifests
    return Path(__file__).resolve().parents[1] / "manifests"


def load_yaml_rel(rel_path: str) -> Dict[str, Any]:
    """Load a YAML file bundled under alpine_chroot_install/manifests."""

    p = _manifests_dir() / rel_path.lstrip("/")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Manifest must be a mapping/dict: {p}")
    return data


@dataclass(frozen=True)
class BootstrapArtifacts:
    apk_tools: TrustedArtifact
    keys: List[TrustedArtifact]

    def all(self) -> List[TrustedArtifact]:
        return [self.apk_tools, *self.keys]


def _pinned(name: str, uri: Optional[str], sha256: Optional[str]) -> TrustedArtifact:
    if not uri:
        raise ConfigError(f"No URI configured for artifact {name}")
    digest = (sha256 or "").strip().lower()
    if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
        raise ConfigError(
            f"Artifact {name} has no pinned sha256 digest; refusing to use unverified {uri}"
        )
    return TrustedArtifact(name=name, uri=uri, sha256=digest)


def load_bootstrap_artifacts(
    host_arch: str,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    manifest: Optional[Mapping[str, Any]] = None,
) -> BootstrapArtifacts:
    """Resolve apk.static for the host arch plus the trust keys.

    `overrides` has the same shape as the manifest, except that
    apk_tools.sha256 is a single digest rather than a per-arch mapping.
    """

    base = dict(manifest if manifest is not None else load_yaml_rel("artifacts.yaml"))
    overrides = overrides or {}

    apk = dict(base.get("apk_tools") or {})
    apk_override = dict(overrides.get("apk_tools") or {})
    version = str(apk_override.get("version") or apk.get("version") or "")
    uri_tpl = apk_override.get("uri") or apk.get("uri")
    uri = str(uri_tpl).format(version=version, arch=host_arch) if uri_tpl else None

    sha = apk_override.get("sha256")
    if sha is None:
        per_arch = apk.get("sha256") or {}
        sha = per_arch.get(host_arch) if isinstance(per_arch, dict) else per_arch

    apk_tools = _pinned("apk.static", uri, sha)

    keys = [
        _pinned(str(k.get("name") or ""), k.get("uri"), k.get("sha256"))
        for k in (overrides.get("keys") or base.get("keys") or [])
    ]
    if not keys:
        raise ConfigError("No trust keys configured")

    return BootstrapArtifacts(apk_tools=apk_tools, keys=keys)
