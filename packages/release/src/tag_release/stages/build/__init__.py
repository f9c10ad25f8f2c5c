from .cargo import BuildTool, BuiltPackage, CargoBuildTool, read_manifest
from .stage import BuildStage, PackageArtifact

__all__ = [
    "BuildStage",
    "BuildTool",
    "BuiltPackage",
    "CargoBuildTool",
    "PackageArtifact",
    "read_manifest",
]
