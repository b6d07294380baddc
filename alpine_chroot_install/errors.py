from __future__ import annotations


class ProvisionError(RuntimeError):
    """Base class for errors that abort a provisioning run."""


class ConfigError(ProvisionError):
    pass


class PrivilegeError(ProvisionError):
    pass


class TransportError(ProvisionError):
    """A download failed (connection, timeout or HTTP status)."""


class IntegrityError(ProvisionError):
    """Downloaded bytes did not match the pinned digest."""


class EmulatorInstallError(ProvisionError):
    pass


class BinfmtError(ProvisionError):
    pass


class PackageInstallError(ProvisionError):
    pass


class MountError(ProvisionError):
    pass


class UserProvisionError(ProvisionError):
    """Creating the regular user inside the chroot failed.

    Never fatal: the account usually exists already from an earlier run.
    """
