"""Alpine Linux chroot installer (Python-first, step-driven).

Core design goals:
- Idempotent steps, safe to re-run against the same root
- Nothing executed or trusted before its digest is verified
- Architecture-aware: QEMU user emulation only when needed
- Centralized logging
"""

__version__ = "0.14.0"

__all__ = ["__version__"]
