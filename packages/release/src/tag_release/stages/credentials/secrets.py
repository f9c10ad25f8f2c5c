from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Protocol

from pydantic import SecretStr

from tag_release.core import AuthError


class SecretStore(Protocol):
    def get(self, name: str) -> str | None: ...


class EnvSecretStore:
    """
    Secrets exposed as environment variables, the way CI runners inject them.
    `crates_token` is looked up as `CRATES_TOKEN` first, then verbatim.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def get(self, name: str) -> str | None:
        env = os.environ if self._environ is None else self._environ
        for candidate in (name.upper(), name):
            v = env.get(candidate)
            if v is not None:
                return v
        return None


class FileSecretStore:
    """
    One file per secret under `root` (e.g. mounted `/run/secrets`).
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def get(self, name: str) -> str | None:
        if not self.root.is_dir():
            raise OSError(f"secret directory is not reachable: {self.root}")
        p = self.root / name
        if not p.is_file():
            return None
        return p.read_text(encoding="utf-8").strip()


@dataclass(eq=False, slots=True)
class Credential:
    """
    Registry credential scoped to one run. The value is kept as a SecretStr so
    reprs and logs only ever show a mask.
    """

    secret_ref: str
    run_id: str
    _secret: SecretStr | None = field(repr=False)
    scope: str = "run"

    @property
    def disposed(self) -> bool:
        return self._secret is None

    def reveal(self) -> str:
        if self._secret is None:
            raise AuthError(f"Credential {self.secret_ref} was already disposed")
        return self._secret.get_secret_value()

    def dispose(self) -> None:
        self._secret = None

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "**********"
        return f"Credential(secret_ref={self.secret_ref!r}, run_id={self.run_id!r}, secret={state})"


class CredentialBinder:
    def __init__(self, store: SecretStore) -> None:
        self.store = store

    def bind(self, secret_ref: str, *, run_id: str) -> Credential:
        try:
            value = self.store.get(secret_ref)
        except Exception as e:
            raise AuthError(f"Secret store unreachable while reading {secret_ref}: {e}") from e

        if value is None:
            raise AuthError(f"Secret {secret_ref} is not set")
        if not value.strip():
            raise AuthError(f"Secret {secret_ref} is empty")
        return Credential(secret_ref=secret_ref, run_id=run_id, _secret=SecretStr(value.strip()))


class CredentialSlot:
    """
    Run-local hand-off between the authenticate and publish stages.
    """

    def __init__(self) -> None:
        self._credential: Credential | None = None

    def put(self, credential: Credential) -> None:
        self.dispose()
        self._credential = credential

    def take(self) -> Credential | None:
        return self._credential

    def dispose(self) -> None:
        if self._credential is not None:
            self._credential.dispose()
            self._credential = None
