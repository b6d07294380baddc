from .step_10_check_privilege import CheckPrivilegeStep
from .step_20_resolve_emulation import ResolveEmulationStep
from .step_30_fetch_artifacts import FetchArtifactsStep
from .step_40_init_rootfs import InitRootFSStep
from .step_50_bind_namespaces import BindNamespacesStep
from .step_60_write_scripts import WriteScriptsStep
from .step_70_first_boot import FirstBootStep

__all__ = [
    "CheckPrivilegeStep",
    "ResolveEmulationStep",
    "FetchArtifactsStep",
    "InitRootFSStep",
    "BindNamespacesStep",
    "WriteScriptsStep",
    "FirstBootStep",
]
