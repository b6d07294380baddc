from __future__ import annotations

import logging
import tempfile
from typing import Any, Dict, Optional

from ..lib.apk import make_executable
from ..lib.arch import alpine_arch
from ..lib.fetch import fetch_all
from ..lib.manifests import load_bootstrap_artifacts

logger = logging.getLogger(__name__)


class FetchArtifactsStep:
    step_id = "30_fetch_artifacts"

    def skip_reason(self, ctx, state: Dict[str, Any]) -> Optional[str]:
        return None

    def run(self, ctx, state: Dict[str, Any]) -> Dict[str, Any]:
        # apk.static runs on the host, so it is the host's build, not the target's.
        artifacts = load_bootstrap_artifacts(alpine_arch(ctx.host.machine), ctx.cfg.artifacts)

        temp_dir = ctx.cfg.temp_dir
        if not temp_dir:
            # Removed by the caller once the run ends; a user-supplied dir is kept.
            temp_dir = tempfile.mkdtemp(prefix="alpine-chroot-install.")
            state["owned_temp_dir"] = temp_dir
        logger.info("Downloading bootstrap artifacts into %s", temp_dir)

        # All of them are verified before any is used.
        paths = fetch_all(artifacts.all(), temp_dir, session=ctx.session)

        apk_tool = paths[artifacts.apk_tools.name]
        make_executable(apk_tool)

        state["temp_dir"] = temp_dir
        state["apk_tool"] = str(apk_tool)
        state["keys"] = {k.name: paths[k.name] for k in artifacts.keys}
        return state
