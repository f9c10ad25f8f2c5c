from .secrets import (
    Credential,
    CredentialBinder,
    CredentialSlot,
    EnvSecretStore,
    FileSecretStore,
    SecretStore,
)
from .stage import AuthenticateStage

__all__ = [
    "AuthenticateStage",
    "Credential",
    "CredentialBinder",
    "CredentialSlot",
    "EnvSecretStore",
    "FileSecretStore",
    "SecretStore",
]
