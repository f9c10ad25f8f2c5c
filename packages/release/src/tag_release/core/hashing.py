import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


@dataclass(frozen=True)
class FileDigest:
    sha256: str
    bytes: int


def sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()


def sha256_file(path: Path, *, chunk_bytes: int = 1024 * 1024) -> FileDigest:
    h = hashlib.sha256()
    total = 0
    with path.open("rb") as f:
        while True:
            b = f.read(chunk_bytes)
            if not b:
                break
            h.update(b)
            total += len(b)

    return FileDigest(sha256=h.hexdigest(), bytes=total)


def sha256_files(paths: Iterable[Path]) -> str:
    """
    Combined digest over many files, same construction as CI `hashFiles`:
    sha256 over the concatenated per-file sha256 digests, in sorted path order.

    Returns "" when no files are given.
    """
    ordered = sorted(Path(p) for p in paths)
    if not ordered:
        return ""

    h = hashlib.sha256()
    for p in ordered:
        h.update(bytes.fromhex(sha256_file(p).sha256))
    return h.hexdigest()
