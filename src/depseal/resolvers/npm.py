"""npm resolver: ``package-lock.json`` / ``npm-shrinkwrap.json``.

lockfileVersion 2 and 3 list every installed package under ``packages`` keyed
by its ``node_modules`` path; lockfileVersion 1 nests them under
``dependencies``. Root, workspace and ``link`` entries describe the project
itself and are skipped.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from depseal.errors import ManifestParseError, UnsupportedLockfileVersionError
from .base import ResolvedDependency, Resolver, register_resolver

NODE_MODULES = "node_modules/"


def _license(entry: Dict[str, Any]) -> Optional[str]:
    value = entry.get("license")
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, dict) and isinstance(value.get("type"), str):
        return value["type"].strip() or None
    return None


@register_resolver
class NpmResolver(Resolver):
    name = "npm"
    lockfile_names = ("package-lock.json", "npm-shrinkwrap.json")
    min_manager_version = "5.0.0"
    vendored_dirs = ("node_modules",)

    def parse(self, source: str, text: str) -> List[ResolvedDependency]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(f"invalid JSON: {exc}", source=source) from exc
        if not isinstance(data, dict):
            raise ManifestParseError("lockfile root is not an object", source=source)

        lock_version = data.get("lockfileVersion")
        if lock_version in (2, 3):
            packages = data.get("packages")
            if not isinstance(packages, dict):
                raise ManifestParseError("missing packages map", source=source)
            return self._parse_packages(source, packages)
        if lock_version == 1:
            return self._parse_tree(source, data.get("dependencies") or {}, prefix="")
        raise UnsupportedLockfileVersionError(
            f"unsupported lockfileVersion {lock_version!r} (expected 1, 2 or 3)", source=source
        )

    def _parse_packages(self, source: str, packages: Dict[str, Any]) -> List[ResolvedDependency]:
        out: List[ResolvedDependency] = []
        for key, entry in packages.items():
            if NODE_MODULES not in key:
                continue
            if not isinstance(entry, dict):
                raise ManifestParseError("package entry is not an object", source=source, record=key)
            if entry.get("link"):
                continue
            name = entry.get("name") or key.rsplit(NODE_MODULES, 1)[-1]
            if not isinstance(name, str) or not name:
                raise ManifestParseError("cannot determine package name", source=source, record=key)
            version = self.version(source, key, entry.get("version"))
            out.append(ResolvedDependency(name=name, version=version, license=_license(entry), source=source))
        return out

    def _parse_tree(self, source: str, deps: Any, prefix: str) -> List[ResolvedDependency]:
        if not isinstance(deps, dict):
            raise ManifestParseError("dependencies is not an object", source=source, record=prefix or "<root>")
        out: List[ResolvedDependency] = []
        for name, entry in deps.items():
            record = f"{prefix}{name}"
            if not isinstance(entry, dict):
                raise ManifestParseError("dependency entry is not an object", source=source, record=record)
            version = self.version(source, record, entry.get("version"))
            out.append(ResolvedDependency(name=name, version=version, license=_license(entry), source=source))
            nested = entry.get("dependencies")
            if nested:
                out.extend(self._parse_tree(source, nested, prefix=f"{record} > "))
        return out
