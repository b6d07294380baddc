from __future__ import annotations

import hashlib
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

import requests

from ..errors import IntegrityError, TransportError

logger = logging.getLogger(__name__)


CONNECT_TIMEOUT_S = 10
READ_TIMEOUT_S = 60
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class TrustedArtifact:
    name: str
    uri: str
    sha256: str

    @property
    def filename(self) -> str:
        return posixpath.basename(urlparse(self.uri).path)


def fetch(
    uri: str,
    sha256: str,
    dest_dir: str | Path,
    *,
    filename: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Path:
    """Download `uri` into `dest_dir` and verify it against `sha256`.

    A stale file of the same name is overwritten. On a digest mismatch the
    downloaded file is deleted and IntegrityError is raised; there is no retry.
    """

    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    name = filename or posixpath.basename(urlparse(uri).path)
    if not name:
        raise TransportError(f"Cannot derive a file name from {uri}")
    out = dest / name

    http = session or requests
    logger.info("Downloading %s", uri)
    h = hashlib.sha256()
    try:
        with http.get(uri, stream=True, timeout=(CONNECT_TIMEOUT_S, READ_TIMEOUT_S)) as resp:
            resp.raise_for_status()
            with out.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        h.update(chunk)
                        f.write(chunk)
    except requests.RequestException as e:
        out.unlink(missing_ok=True)
        raise TransportError(f"Failed to download {uri}: {e}") from e

    actual = h.hexdigest()
    if actual != sha256.strip().lower():
        out.unlink(missing_ok=True)
        raise IntegrityError(f"Checksum mismatch for {uri}: expected {sha256}, got {actual}")

    logger.info("Verified %s (sha256 %s)", out, actual)
    return out


def fetch_all(
    artifacts: Iterable[TrustedArtifact],
    dest_dir: str | Path,
    *,
    session: Optional[requests.Session] = None,
) -> Dict[str, Path]:
    """Fetch and verify every artifact; the first failure aborts the batch."""

    return {
        a.name: fetch(a.uri, a.sha256, dest_dir, filename=a.filename, session=session)
        for a in artifacts
    }
