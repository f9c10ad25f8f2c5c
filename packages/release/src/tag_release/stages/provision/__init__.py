from .stage import ProvisionStage
from .toolchain import (
    EnvironmentProvisioner,
    RustupToolchainRepository,
    ToolchainHandle,
    ToolchainRepository,
)

__all__ = [
    "EnvironmentProvisioner",
    "ProvisionStage",
    "RustupToolchainRepository",
    "ToolchainHandle",
    "ToolchainRepository",
]
