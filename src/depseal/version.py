"""Version model: parsing and total ordering of version strings.

Grammar::

    [v]MAJOR[.MINOR[.PATCH]][-PRERELEASE][+BUILD]

Missing MINOR / PATCH components are zero. PRERELEASE and BUILD are
dot-separated identifiers over ``[0-9A-Za-z-]``. Build metadata is kept for
display but ignored by comparison and equality.

Comparison is done by free functions over the frozen :class:`Version` value
so it can be re-executed inside the guest without any state.
"""
from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import Tuple, Union

from depseal.errors import VersionParseError

_IDENT = re.compile(r"^[0-9A-Za-z-]+$")
_NUMERIC = re.compile(r"^[0-9]+$")

PrereleaseId = Union[int, str]


@functools.total_ordering
@dataclass(frozen=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0
    prerelease: Tuple[PrereleaseId, ...] = ()
    build: str = field(default="", compare=False)

    @property
    def core(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare(self, other) < 0

    def is_at_least(self, minimum: "Version") -> bool:
        return is_at_least(self, minimum)


def _parse_identifiers(text: str, what: str, source: str) -> Tuple[str, ...]:
    parts = text.split(".")
    for part in parts:
        if not part or not _IDENT.match(part):
            raise VersionParseError(source, f"invalid {what} identifier {part!r}")
    return tuple(parts)


def parse_version(text: str) -> Version:
    """Parse ``text`` into a :class:`Version` or raise ``VersionParseError``."""
    if not isinstance(text, str):
        raise VersionParseError(repr(text), "version must be a string")
    raw = text.strip()
    if not raw:
        raise VersionParseError(text, "empty version")
    body = raw[1:] if raw[0] in "vV" else raw

    build = ""
    if "+" in body:
        body, build = body.split("+", 1)
        _parse_identifiers(build, "build", text)

    prerelease: Tuple[PrereleaseId, ...] = ()
    if "-" in body:
        body, pre = body.split("-", 1)
        idents = []
        for ident in _parse_identifiers(pre, "prerelease", text):
            if _NUMERIC.match(ident):
                if len(ident) > 1 and ident.startswith("0"):
                    raise VersionParseError(text, f"numeric prerelease identifier {ident!r} has a leading zero")
                idents.append(int(ident))
            else:
                idents.append(ident)
        prerelease = tuple(idents)

    core = body.split(".")
    if not 1 <= len(core) <= 3:
        raise VersionParseError(text, "expected one to three numeric components")
    numbers = []
    for part in core:
        if not _NUMERIC.match(part):
            raise VersionParseError(text, f"non-numeric component {part!r}")
        numbers.append(int(part))
    while len(numbers) < 3:
        numbers.append(0)
    return Version(numbers[0], numbers[1], numbers[2], prerelease, build)


def _compare_identifier(left: PrereleaseId, right: PrereleaseId) -> int:
    left_num = isinstance(left, int)
    right_num = isinstance(right, int)
    if left_num and right_num:
        return (left > right) - (left < right)
    if left_num:
        return -1
    if right_num:
        return 1
    return (left > right) - (left < right)


def compare(left: Version, right: Version) -> int:
    """Return -1, 0 or 1 as ``left`` is lower than, equal to or above ``right``."""
    if left.core != right.core:
        return -1 if left.core < right.core else 1
    if not left.prerelease and not right.prerelease:
        return 0
    # a release outranks any prerelease of the same core
    if not left.prerelease:
        return 1
    if not right.prerelease:
        return -1
    for a, b in zip(left.prerelease, right.prerelease):
        result = _compare_identifier(a, b)
        if result:
            return result
    return (len(left.prerelease) > len(right.prerelease)) - (len(left.prerelease) < len(right.prerelease))


def is_at_least(version: Version, minimum: Version) -> bool:
    return compare(version, minimum) >= 0


__all__ = ["Version", "parse_version", "compare", "is_at_least"]
