"""Resolver types, registry and the archive-level ``resolve`` entry point."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from depseal.commitment.archive import SourceArchive, normalize_path
from depseal.errors import (
    DuplicateDependencyError,
    ManifestParseError,
    UnsupportedManagerError,
    VersionParseError,
)
from depseal.version import Version, is_at_least, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageManagerSpec:
    """Package manager identity disclosed in receipts as ``manager@version``."""

    manager: str
    version: str

    @classmethod
    def parse(cls, manager: str, version: str) -> "PackageManagerSpec":
        name = (manager or "").strip().lower()
        if not name:
            raise UnsupportedManagerError("package manager name is empty")
        raw = (version or "").strip()
        parse_version(raw)
        return cls(manager=name, version=raw)

    @classmethod
    def from_id(cls, identifier: str) -> "PackageManagerSpec":
        manager, sep, version = identifier.partition("@")
        if not sep:
            raise UnsupportedManagerError(f"package manager id {identifier!r} is not of the form name@version")
        return cls.parse(manager, version)

    @property
    def parsed_version(self) -> Version:
        return parse_version(self.version)

    @property
    def id(self) -> str:
        return f"{self.manager}@{self.version}"

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class ResolvedDependency:
    name: str
    version: Version
    license: Optional[str] = None
    source: str = ""


class DependencySet(Mapping[str, ResolvedDependency]):
    """Dependencies unique by name; iteration is in name-sorted order."""

    def __init__(self, deps: Iterable[ResolvedDependency] = ()):
        by_name: Dict[str, ResolvedDependency] = {}
        for dep in deps:
            existing = by_name.get(dep.name)
            if existing is None:
                by_name[dep.name] = dep
                continue
            if existing.version != dep.version:
                raise DuplicateDependencyError(dep.name, str(existing.version), str(dep.version))
            if existing.license is None:
                if dep.license is not None:
                    by_name[dep.name] = dep
            elif dep.license is not None and dep.license != existing.license:
                raise ManifestParseError(
                    f"conflicting licenses {existing.license!r} and {dep.license!r}",
                    source=dep.source or existing.source or None,
                    record=dep.name,
                )
        self._deps = dict(sorted(by_name.items()))

    def __getitem__(self, name: str) -> ResolvedDependency:
        return self._deps[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._deps)

    def __len__(self) -> int:
        return len(self._deps)

    def sorted(self) -> List[ResolvedDependency]:
        return list(self._deps.values())

    def __repr__(self) -> str:
        return f"DependencySet({len(self)} dependencies)"


###############################################################################
# Resolver base + registry


class Resolver:
    """Translates one package manager's native lockfile into dependencies."""

    name: str = ""
    lockfile_names: Tuple[str, ...] = ()
    min_manager_version: str = "0.0.0"
    # directories whose lockfiles belong to vendored packages, not the project
    vendored_dirs: Tuple[str, ...] = ()
    name_normalization: str = "exact"

    def parse(self, source: str, text: str) -> List[ResolvedDependency]:
        raise NotImplementedError

    def normalize_name(self, name: str) -> str:
        """Canonical spelling used to match dependency names against the allowlist."""
        return name

    def supports(self, version: Version) -> bool:
        return is_at_least(version, parse_version(self.min_manager_version))

    def find_lockfiles(self, archive: SourceArchive) -> List[str]:
        found = []
        for path in archive.paths():
            parts = path.split("/")
            if parts[-1] not in self.lockfile_names:
                continue
            if any(part in self.vendored_dirs for part in parts[:-1]):
                continue
            found.append(path)
        return found

    def descriptor(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "lockfiles": list(self.lockfile_names),
            "min_manager_version": self.min_manager_version,
            "name_normalization": self.name_normalization,
        }

    # helpers shared by concrete resolvers

    def version(self, source: str, record: str, text: object) -> Version:
        if not isinstance(text, str):
            raise ManifestParseError("version is missing or not a string", source=source, record=record)
        try:
            return parse_version(text)
        except VersionParseError as exc:
            raise ManifestParseError(str(exc), source=source, record=record) from exc


_RESOLVERS: Dict[str, Resolver] = {}


def register_resolver(cls: type[Resolver]) -> type[Resolver]:
    _RESOLVERS[cls.name] = cls()
    return cls


def get_resolver(name: str) -> Resolver:
    try:
        return _RESOLVERS[name.strip().lower()]
    except KeyError:
        raise UnsupportedManagerError(
            f"unsupported package manager {name!r} (supported: {', '.join(available_managers())})"
        ) from None


def available_managers() -> List[str]:
    return sorted(_RESOLVERS.keys())


def resolver_descriptors() -> List[Dict[str, object]]:
    return [_RESOLVERS[name].descriptor() for name in available_managers()]


def resolve(
    spec: PackageManagerSpec,
    archive: SourceArchive,
    lockfile: Optional[str] = None,
) -> DependencySet:
    """Locate the manager's lockfile(s) inside ``archive`` and ingest them."""
    resolver = get_resolver(spec.manager)
    if not resolver.supports(spec.parsed_version):
        raise UnsupportedManagerError(
            f"{spec.id} is not supported (requires {resolver.name} >= {resolver.min_manager_version})"
        )

    if lockfile is not None:
        path = normalize_path(lockfile)
        if path not in archive:
            raise ManifestParseError("lockfile not found in archive", source=path)
        sources: Sequence[str] = [path]
    else:
        sources = resolver.find_lockfiles(archive)
        if not sources:
            raise ManifestParseError(
                f"no {' / '.join(resolver.lockfile_names)} found in archive for {resolver.name}"
            )

    records: List[ResolvedDependency] = []
    for source in sources:
        raw = archive.read(source)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestParseError("lockfile is not valid UTF-8", source=source) from exc
        parsed = resolver.parse(source, text)
        logger.debug("%s: %d records from %s", resolver.name, len(parsed), source)
        records.extend(parsed)
    return DependencySet(records)


__all__ = [
    "PackageManagerSpec",
    "ResolvedDependency",
    "DependencySet",
    "Resolver",
    "register_resolver",
    "get_resolver",
    "available_managers",
    "resolver_descriptors",
    "resolve",
]
