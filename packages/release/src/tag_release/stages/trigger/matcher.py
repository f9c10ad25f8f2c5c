from __future__ import annotations

import re
from dataclasses import dataclass

TAG_REF_PREFIX = "refs/tags/"

# Numeric-only semantic version tag, no pre-release or build suffix.
_TAG_RE = re.compile(r"v([0-9]+)\.([0-9]+)\.([0-9]+)")


@dataclass(frozen=True, slots=True, order=True)
class TagVersion:
    major: int
    minor: int
    patch: int

    @property
    def text(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def tag(self) -> str:
        return f"v{self.text}"


def tag_name(ref: str) -> str | None:
    """
    Strip `refs/tags/` from a full ref. Other `refs/...` (branches, notes,
    pull requests) are not tags and give None.
    """
    if ref.startswith(TAG_REF_PREFIX):
        return ref[len(TAG_REF_PREFIX) :]
    if ref.startswith("refs/"):
        return None
    return ref


def parse_tag(ref: str) -> TagVersion | None:
    if not isinstance(ref, str) or not ref:
        return None

    name = tag_name(ref)
    if not name:
        return None

    m = _TAG_RE.fullmatch(name)
    if m is None:
        return None
    return TagVersion(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def matches(ref: str) -> bool:
    return parse_tag(ref) is not None
