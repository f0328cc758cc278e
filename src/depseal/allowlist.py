"""Allowlist loading.

File format::

    {
      "dependencies": [{"name": "serde", "minVersion": "1.0.130"}, ...],
      "licenses": ["MIT", "Apache-2.0"]          # optional
    }

The raw ``minVersion`` strings are kept verbatim: they are disclosed in the
receipt exactly as the producer wrote them.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from depseal.errors import AllowlistError, VersionParseError
from depseal.version import Version, parse_version


@dataclass(frozen=True)
class AllowlistEntry:
    name: str
    min_version: Version
    raw_min_version: str

    def to_public(self) -> Dict[str, str]:
        return {"name": self.name, "minVersion": self.raw_min_version}


class DependencyAllowlist:
    """Non-empty set of allowed package names with their minimum versions."""

    def __init__(self, entries: Iterable[AllowlistEntry]):
        by_name: Dict[str, AllowlistEntry] = {}
        for entry in entries:
            if entry.name in by_name:
                raise AllowlistError(f"duplicate allowlist entry for {entry.name!r}")
            by_name[entry.name] = entry
        if not by_name:
            raise AllowlistError("dependency allowlist is empty")
        self._entries = dict(sorted(by_name.items()))
        self._keyed: Dict[Callable[[str], str], Dict[str, AllowlistEntry]] = {}

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "DependencyAllowlist":
        return cls(_entry(name, minimum, f"#{i}") for i, (name, minimum) in enumerate(pairs))

    def get(self, name: str, normalize: Optional[Callable[[str], str]] = None) -> Optional[AllowlistEntry]:
        """Entry for ``name``; with ``normalize`` both sides are compared in canonical form."""
        if normalize is None:
            return self._entries.get(name)
        return self.keyed_by(normalize).get(normalize(name))

    def keyed_by(self, normalize: Callable[[str], str]) -> Dict[str, AllowlistEntry]:
        index = self._keyed.get(normalize)
        if index is None:
            index = {}
            for entry in self:
                key = normalize(entry.name)
                if key in index:
                    raise AllowlistError(
                        f"allowlist entries {index[key].name!r} and {entry.name!r} name the same package"
                    )
                index[key] = entry
            self._keyed[normalize] = index
        return index

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[AllowlistEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def to_public(self) -> List[Dict[str, str]]:
        return [entry.to_public() for entry in self]


class LicenseAllowlist:
    """Non-empty set of unique license identifiers."""

    def __init__(self, licenses: Iterable[str]):
        seen: List[str] = []
        for value in licenses:
            if not isinstance(value, str) or not value.strip():
                raise AllowlistError(f"invalid license identifier {value!r}")
            ident = value.strip()
            if ident in seen:
                raise AllowlistError(f"duplicate license identifier {ident!r}")
            seen.append(ident)
        if not seen:
            raise AllowlistError("license allowlist is empty")
        self._licenses = frozenset(seen)
        self._folded = frozenset(ident.casefold() for ident in seen)

    def __contains__(self, license_id: object) -> bool:
        return license_id in self._licenses

    def allows(self, identifier: str) -> bool:
        """SPDX identifiers match case-insensitively."""
        return identifier.casefold() in self._folded

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._licenses))

    def __len__(self) -> int:
        return len(self._licenses)

    def to_public(self) -> List[str]:
        return sorted(self._licenses)


def _entry(name: Any, minimum: Any, record: str) -> AllowlistEntry:
    if not isinstance(name, str) or not name.strip():
        raise AllowlistError(f"allowlist entry {record}: name must be a non-empty string")
    if not isinstance(minimum, str):
        raise AllowlistError(f"allowlist entry {name!r}: minVersion must be a string")
    try:
        parsed = parse_version(minimum)
    except VersionParseError as exc:
        raise AllowlistError(f"allowlist entry {name!r}: {exc}") from exc
    return AllowlistEntry(name=name.strip(), min_version=parsed, raw_min_version=minimum)


def parse_allowlist(
    data: Any, extra_licenses: Sequence[str] = ()
) -> Tuple[DependencyAllowlist, Optional[LicenseAllowlist]]:
    if not isinstance(data, dict):
        raise AllowlistError("allowlist must be a JSON object")
    unknown = set(data) - {"dependencies", "licenses"}
    if unknown:
        raise AllowlistError(f"unknown allowlist keys: {', '.join(sorted(unknown))}")
    deps = data.get("dependencies")
    if not isinstance(deps, list):
        raise AllowlistError("allowlist is missing the 'dependencies' array")
    entries = []
    for i, item in enumerate(deps):
        if not isinstance(item, dict):
            raise AllowlistError(f"allowlist entry #{i} is not an object")
        if "name" not in item or "minVersion" not in item:
            raise AllowlistError(f"allowlist entry #{i} needs 'name' and 'minVersion'")
        entries.append(_entry(item["name"], item["minVersion"], f"#{i}"))
    allowlist = DependencyAllowlist(entries)

    licenses = data.get("licenses")
    if licenses is not None and not isinstance(licenses, list):
        raise AllowlistError("'licenses' must be an array of strings")
    merged = list(licenses or [])
    for extra in extra_licenses:
        if extra not in merged:
            merged.append(extra)
    if licenses is None and not extra_licenses:
        return allowlist, None
    return allowlist, LicenseAllowlist(merged)


def load_allowlist(
    path: Path | str, extra_licenses: Sequence[str] = ()
) -> Tuple[DependencyAllowlist, Optional[LicenseAllowlist]]:
    """Load the allowlist file, merging ``extra_licenses`` into its license list."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise AllowlistError(f"cannot read allowlist {path}: {exc}") from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise AllowlistError(f"allowlist file is not valid JSON: {path}") from exc
    return parse_allowlist(data, extra_licenses)


__all__ = [
    "AllowlistEntry",
    "DependencyAllowlist",
    "LicenseAllowlist",
    "parse_allowlist",
    "load_allowlist",
]
