from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from tag_release.core import (
    AlreadyPublished,
    AuthRejected,
    PublishError,
    RegistryUnavailable,
    ValidationFailed,
)
from tag_release.stages.build.stage import PackageArtifact
from tag_release.stages.credentials.secrets import Credential

from .http import (
    RetryableHttpStatus,
    body_snippet,
    is_retryable_status,
    make_http_client,
    query_with_retries,
)

log = structlog.get_logger(__name__)

_U32 = struct.Struct("<I")

_ALREADY_MARKERS = ("already uploaded", "already exists", "already been uploaded")


@dataclass(frozen=True, slots=True)
class SubmitResult:
    warnings: list[str] = field(default_factory=list)


class Registry(Protocol):
    name: str

    def version_exists(self, package: str, version: str) -> bool: ...
    def submit(self, artifact: PackageArtifact, credential: Credential) -> SubmitResult: ...


def crate_metadata(artifact: PackageArtifact) -> dict[str, Any]:
    """
    Publish metadata in the shape the crates.io upload endpoint expects.

    The index entry is built from this document, so an artifact whose build
    tool did not report its dependency list is refused.
    """
    md = artifact.metadata
    if "deps" not in md:
        raise ValidationFailed(
            f"{artifact.name}@{artifact.version}: build metadata has no dependency list"
        )
    return {
        "name": artifact.name,
        "vers": artifact.version,
        "deps": [dict(d) for d in md.get("deps") or []],
        "features": {k: list(v) for k, v in (md.get("features") or {}).items()},
        "authors": list(md.get("authors") or []),
        "description": md.get("description"),
        "documentation": md.get("documentation"),
        "homepage": md.get("homepage"),
        "readme": md.get("readme_text"),
        "readme_file": md.get("readme"),
        "keywords": list(md.get("keywords") or []),
        "categories": list(md.get("categories") or []),
        "license": md.get("license"),
        "license_file": md.get("license-file"),
        "repository": md.get("repository"),
        "badges": {},
        "links": md.get("links"),
        "rust_version": md.get("rust-version"),
    }


def encode_upload_body(metadata: dict[str, Any], crate: bytes) -> bytes:
    """
    u32 LE json length, json, u32 LE crate length, crate bytes.
    """
    meta = json.dumps(metadata, separators=(",", ":")).encode("utf-8")
    return _U32.pack(len(meta)) + meta + _U32.pack(len(crate)) + crate


def _error_details(resp: httpx.Response) -> list[str]:
    try:
        body = resp.json()
    except ValueError:
        return []
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        return []
    return [str(e.get("detail")) for e in errors if isinstance(e, dict) and e.get("detail")]


def _warnings(resp: httpx.Response) -> list[str]:
    try:
        body = resp.json()
    except ValueError:
        return []
    w = body.get("warnings") if isinstance(body, dict) else None
    if not isinstance(w, dict):
        return []
    out: list[str] = []
    for kind in sorted(w.keys()):
        items = w[kind]
        if isinstance(items, list):
            out.extend(f"{kind}: {x}" for x in items)
    return out


def classify_rejection(
    *, status_code: int, details: list[str], package: str, version: str, snippet: str | None
) -> PublishError:
    detail = "; ".join(details) or snippet or f"HTTP {status_code}"
    lowered = detail.lower()

    if status_code == 409 or any(m in lowered for m in _ALREADY_MARKERS):
        return AlreadyPublished(package, version, detail)
    if status_code in (401, 403):
        return AuthRejected(f"Registry rejected the credential (HTTP {status_code}): {detail}")
    if is_retryable_status(status_code):
        return RegistryUnavailable(f"Registry unavailable (HTTP {status_code}): {detail}")
    return ValidationFailed(f"Registry rejected {package}@{version} (HTTP {status_code}): {detail}")


class HttpRegistry:
    """
    crates.io compatible registry API over httpx.
    """

    def __init__(
        self,
        *,
        url: str,
        timeout_s: float = 60.0,
        max_query_attempts: int = 3,
        backoff_base: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.name = url.rstrip("/")
        self.max_query_attempts = max_query_attempts
        self.backoff_base = backoff_base
        self._client = make_http_client(
            base_url=self.name, timeout_s=timeout_s, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def version_exists(self, package: str, version: str) -> bool:
        path = f"/api/v1/crates/{package}/{version}"

        def _do() -> bool:
            resp = self._client.get(path)
            if resp.status_code == 200:
                return True
            if resp.status_code == 404:
                return False
            if is_retryable_status(resp.status_code):
                raise RetryableHttpStatus(method="GET", url=path, status_code=resp.status_code)
            raise RegistryUnavailable(
                f"GET {path} returned HTTP {resp.status_code}: {body_snippet(resp)}"
            )

        return query_with_retries(
            _do,
            method="GET",
            url=path,
            max_attempts=self.max_query_attempts,
            backoff_base=self.backoff_base,
        )

    def submit(self, artifact: PackageArtifact, credential: Credential) -> SubmitResult:
        body = encode_upload_body(crate_metadata(artifact), artifact.path.read_bytes())

        # Single attempt: a retried upload could double-publish.
        try:
            resp = self._client.put(
                "/api/v1/crates/new",
                content=body,
                headers={
                    "Authorization": credential.reveal(),
                    "Content-Type": "application/octet-stream",
                },
            )
        except httpx.TimeoutException as e:
            raise RegistryUnavailable(
                f"Upload of {artifact.name}@{artifact.version} timed out; "
                "check the registry before re-running"
            ) from e
        except httpx.TransportError as e:
            raise RegistryUnavailable(f"Upload transport failure: {e}") from e

        details = _error_details(resp)
        if resp.status_code == 200 and not details:
            return SubmitResult(warnings=_warnings(resp))

        raise classify_rejection(
            status_code=resp.status_code,
            details=details,
            package=artifact.name,
            version=artifact.version,
            snippet=body_snippet(resp),
        )
