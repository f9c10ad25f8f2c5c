from __future__ import annotations

import traceback
from dataclasses import dataclass


class ReleaseError(RuntimeError):
    """Base error"""

    retryable: bool = False
    hint: str = "inspect the error and re-run the pipeline"


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str
    retryable: bool = False
    hint: str | None = None


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
        retryable=bool(getattr(exc, "retryable", False)),
        hint=getattr(exc, "hint", None),
    )


class ConfigError(ReleaseError):
    """Release configuration is missing or invalid"""

    hint = "fix the release configuration"


class ProvisionError(ReleaseError):
    """
    Toolchain could not be resolved, installed or selected.
    """

    retryable = True
    hint = "toolchain provisioning failed; re-run once the toolchain source is reachable"


class CacheError(ReleaseError):
    """Cache store failure. Never fatal, downgraded to a miss."""


class BuildError(ReleaseError):
    """Build tool failed or produced no usable package"""

    hint = "fix the build and push a new tag"


class AuthError(ReleaseError):
    """
    Secret missing from the store, or the store is unreachable.
    """

    hint = "check that the registry token secret is configured for this run"


class PublishError(ReleaseError):
    """Publish-stage error"""


class AlreadyPublished(PublishError):
    """
    The registry already holds this name/version. Terminal, never a success.
    """

    hint = "version conflict: bump the version and push a new tag"

    def __init__(self, name: str, version: str, detail: str | None = None) -> None:
        msg = f"{name}@{version} is already published"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
        self.name = name
        self.version = version


class AuthRejected(PublishError):
    """Registry refused the credential"""

    hint = "the registry rejected the token; rotate the secret and re-run"


class ValidationFailed(PublishError):
    """Registry refused the package content"""

    hint = "the registry rejected the package; fix its metadata and push a new tag"


class RegistryUnavailable(PublishError):
    """
    Timeouts, transport failures, upstream 5xx.
    """

    retryable = True
    hint = "transient registry issue; re-run the pipeline"
