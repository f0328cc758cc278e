"""Cargo resolver: ``Cargo.lock`` format versions 3 and 4.

Packages without a ``source`` are workspace members or path crates and are not
third-party dependencies. Every sourced package must be reachable from a
workspace member through the lockfile's own dependency lists; an unreachable
entry means the lockfile carries a package nothing declares.
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple

try:
    import tomllib
except ImportError:  # Python < 3.11
    import tomli as tomllib

from depseal.errors import ManifestParseError, UnsupportedLockfileVersionError
from .base import ResolvedDependency, Resolver, register_resolver

SUPPORTED_LOCK_VERSIONS = (3, 4)


@register_resolver
class CargoResolver(Resolver):
    name = "cargo"
    lockfile_names = ("Cargo.lock",)
    # 1.51 is the first stable cargo that writes v3 lockfiles
    min_manager_version = "1.51.0"
    vendored_dirs = ("vendor", "target")

    def parse(self, source: str, text: str) -> List[ResolvedDependency]:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestParseError(f"invalid TOML: {exc}", source=source) from exc

        lock_version = data.get("version")
        if lock_version not in SUPPORTED_LOCK_VERSIONS:
            raise UnsupportedLockfileVersionError(
                f"unsupported Cargo.lock version {lock_version!r} (expected 3 or 4)", source=source
            )

        packages = data.get("package")
        if not isinstance(packages, list):
            raise ManifestParseError("missing [[package]] tables", source=source)

        nodes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        by_name: Dict[str, List[Tuple[str, str]]] = {}
        for i, pkg in enumerate(packages):
            if not isinstance(pkg, dict):
                raise ManifestParseError("package entry is not a table", source=source, record=f"#{i}")
            name = pkg.get("name")
            if not isinstance(name, str) or not name:
                raise ManifestParseError("package has no name", source=source, record=f"#{i}")
            ver = pkg.get("version")
            self.version(source, name, ver)
            key = (name, ver)
            if key in nodes:
                raise ManifestParseError("package listed twice", source=source, record=f"{name} {ver}")
            nodes[key] = pkg
            by_name.setdefault(name, []).append(key)

        edges = {key: self._edges(source, key, pkg, by_name) for key, pkg in nodes.items()}
        roots = [key for key, pkg in nodes.items() if pkg.get("source") is None]
        if not roots:
            raise ManifestParseError("lockfile has no workspace member (package without source)", source=source)

        seen = set()
        stack = list(roots)
        while stack:
            key = stack.pop()
            if key in seen:
                continue
            seen.add(key)
            stack.extend(edges[key])

        resolved: List[ResolvedDependency] = []
        for key, pkg in nodes.items():
            if pkg.get("source") is None:
                continue
            name, ver = key
            if key not in seen:
                raise ManifestParseError(
                    "undeclared dependency: not reachable from any workspace member",
                    source=source,
                    record=f"{name} {ver}",
                )
            resolved.append(ResolvedDependency(name=name, version=self.version(source, name, ver), source=source))
        return resolved

    def _edges(
        self,
        source: str,
        key: Tuple[str, str],
        pkg: Dict[str, Any],
        by_name: Dict[str, List[Tuple[str, str]]],
    ) -> List[Tuple[str, str]]:
        deps = pkg.get("dependencies", [])
        if not isinstance(deps, list):
            raise ManifestParseError("dependencies is not a list", source=source, record=" ".join(key))
        out = []
        for ref in deps:
            if not isinstance(ref, str) or not ref.strip():
                raise ManifestParseError("malformed dependency reference", source=source, record=" ".join(key))
            # "name", "name version" or "name version (source)"
            parts = ref.split()
            candidates = by_name.get(parts[0], [])
            if len(parts) > 1:
                candidates = [c for c in candidates if c[1] == parts[1]]
            if len(candidates) != 1:
                raise ManifestParseError(
                    f"dependency reference {ref!r} does not match exactly one package",
                    source=source,
                    record=" ".join(key),
                )
            out.append(candidates[0])
        return out
