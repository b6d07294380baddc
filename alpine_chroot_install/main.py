from __future__ import annotations

import argparse
import logging
import os
import shutil
import sys
from typing import Any, Callable, Dict, Optional

import requests

from . import __version__
from .config import HostEnvironment, ProvisioningConfig, load_config_file, resolve_config
from .errors import ProvisionError
from .lib.command import Runner, run_cmd
from .lib.emulation import AptEmulationInstaller, EmulationInstaller
from .lib.env import PATHS, HostPaths
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import PipelineResult, ProvisionCtx, run_pipeline
from .steps import (
    BindNamespacesStep,
    CheckPrivilegeStep,
    FetchArtifactsStep,
    FirstBootStep,
    InitRootFSStep,
    ResolveEmulationStep,
    WriteScriptsStep,
)

logger = logging.getLogger(__name__)


DESCRIPTION = """\
Install an Alpine Linux chroot of any supported architecture into a directory,
with QEMU user emulation when the architecture differs from the host's.
Every option can also be given by the environment variable in brackets.
"""


def build_steps():
    return [
        CheckPrivilegeStep(),
        ResolveEmulationStep(),
        FetchArtifactsStep(),
        InitRootFSStep(),
        BindNamespacesStep(),
        WriteScriptsStep(),
        FirstBootStep(),
    ]


def run(
    cfg: ProvisioningConfig,
    host: HostEnvironment,
    *,
    installer: Optional[EmulationInstaller] = None,
    runner: Runner = run_cmd,
    session: Optional[requests.Session] = None,
    paths: HostPaths = PATHS,
    is_mounted: Callable[[str], bool] = os.path.ismount,
) -> PipelineResult:
    """Provision cfg.chroot_dir. Raises ProvisionError on the first failure."""

    ctx = ProvisionCtx(
        cfg=cfg,
        host=host,
        installer=installer or AptEmulationInstaller(runner=runner),
        runner=runner,
        session=session,
        paths=paths,
        is_mounted=is_mounted,
    )
    state: Dict[str, Any] = {}
    try:
        result = run_pipeline(ctx=ctx, steps=build_steps(), state=state)
    finally:
        owned = state.get("owned_temp_dir")
        if owned:
            logger.info("Removing %s", owned)
            shutil.rmtree(owned, ignore_errors=True)
    logger.info("Ran steps: %s", ", ".join(result.ran_steps) or "-")
    logger.info("Skipped steps: %s", ", ".join(result.skipped_steps) or "-")
    return result


class _Parser(argparse.ArgumentParser):
    """Usage errors are fatal errors like any other: exit 1, not 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(prog="alpine-chroot-install", description=DESCRIPTION)
    p.add_argument("-a", dest="arch", metavar="ARCH", help="CPU architecture for the chroot [ARCH] (default: host arch)")
    p.add_argument("-b", dest="branch", metavar="BRANCH", help="Alpine branch to install [ALPINE_BRANCH] (default: latest-stable)")
    p.add_argument("-d", dest="chroot_dir", metavar="DIR", help="Absolute path of the chroot [CHROOT_DIR] (default: /alpine)")
    p.add_argument("-i", dest="bind_dir", metavar="DIR", help="Absolute host path to bind into the chroot [BIND_DIR] (default: cwd)")
    p.add_argument(
        "-k",
        dest="keep_vars",
        metavar="VARS",
        action="append",
        help="Env variable name patterns to pass into the chroot, appended [CHROOT_KEEP_VARS]",
    )
    p.add_argument("-m", dest="mirror", metavar="URI", help="Alpine mirror URI [ALPINE_MIRROR]")
    p.add_argument("-p", dest="packages", metavar="PKGS", action="append", help="Packages to install, appended [ALPINE_PACKAGES]")
    p.add_argument("-r", dest="extra_repos", metavar="REPO", action="append", help="Extra repositories, appended [EXTRA_REPOS]")
    p.add_argument("-t", dest="temp_dir", metavar="DIR", help="Directory for downloads [TEMP_DIR] (default: mktemp -d)")
    p.add_argument("-c", dest="config", metavar="FILE", help="YAML file with defaults for the options above")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to the installer log")
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    host = HostEnvironment.capture()

    # No log file before the privilege check has passed.
    configure_logging(log_path=args.log if host.euid == 0 else None)
    flags = {k: v for k, v in vars(args).items() if k not in {"config", "log"}}

    try:
        file_values = load_config_file(args.config) if args.config else {}
        cfg = resolve_config(host, flags=flags, file_values=file_values)
        run(cfg, host)
    except ProvisionError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Installer failed")
        return 1

    logger.info(
        "Alpine installation is complete\n"
        "Run %s/enter-chroot [-u <user>] [command] to enter the chroot\n"
        "and %s/destroy [--remove] to destroy it.",
        cfg.chroot_dir,
        cfg.chroot_dir,
    )
    return 0
