from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Sequence

from tag_release.core import make_tmp_dir_for, merge_into, remove_tree


def pack_paths(paths: Sequence[Path]) -> tuple[bytes, list[int]]:
    """
    Archive a path set into gzip tar bytes.

    Path i is stored under the member prefix `i/`, so the archive does not
    depend on where the paths live. Missing paths are skipped; returns the
    archive and the indices that were packed.
    """
    buf = io.BytesIO()
    packed: list[int] = []
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for idx, p in enumerate(paths):
            p = Path(p)
            if not p.exists():
                continue
            tf.add(str(p), arcname=str(idx), recursive=True)
            packed.append(idx)
    return buf.getvalue(), packed


def unpack_paths(payload: bytes, paths: Sequence[Path]) -> list[Path]:
    """
    Restore an archive made by `pack_paths` onto `paths`, merging over
    anything already there. Returns the restored paths.
    """
    if not paths:
        return []

    staging = make_tmp_dir_for(Path(paths[0]))
    restored: list[Path] = []
    try:
        with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as tf:
            tf.extractall(staging, filter="data")

        for idx, target in enumerate(paths):
            src = staging / str(idx)
            if not src.exists():
                continue
            merge_into(src, Path(target))
            restored.append(Path(target))
    finally:
        remove_tree(staging)
    return restored
