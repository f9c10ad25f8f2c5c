from .build import BuildStage
from .cache import CacheRestoreStage, CacheSaveStage
from .credentials import AuthenticateStage
from .provision import ProvisionStage
from .publish import PublishStage
from .trigger import TriggerStage

__all__ = [
    "TriggerStage",
    "ProvisionStage",
    "CacheRestoreStage",
    "BuildStage",
    "CacheSaveStage",
    "AuthenticateStage",
    "PublishStage",
]
