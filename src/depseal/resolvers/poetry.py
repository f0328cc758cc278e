"""Poetry resolver: ``poetry.lock`` ``[[package]]`` tables."""
from __future__ import annotations

from typing import List

try:
    import tomllib
except ImportError:  # Python < 3.11
    import tomli as tomllib

from depseal.errors import ManifestParseError
from .base import ResolvedDependency, Resolver, register_resolver
from .pip import normalize_name, pep440_to_version


@register_resolver
class PoetryResolver(Resolver):
    name = "poetry"
    lockfile_names = ("poetry.lock",)
    min_manager_version = "1.0.0"
    vendored_dirs = (".venv", "venv")
    name_normalization = "pep503"

    def normalize_name(self, name: str) -> str:
        return normalize_name(name)

    def parse(self, source: str, text: str) -> List[ResolvedDependency]:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestParseError(f"invalid TOML: {exc}", source=source) from exc

        packages = data.get("package", [])
        if not isinstance(packages, list):
            raise ManifestParseError("package is not an array of tables", source=source)

        out: List[ResolvedDependency] = []
        for i, pkg in enumerate(packages):
            if not isinstance(pkg, dict):
                raise ManifestParseError("package entry is not a table", source=source, record=f"#{i}")
            name = pkg.get("name")
            if not isinstance(name, str) or not name:
                raise ManifestParseError("package has no name", source=source, record=f"#{i}")
            raw = pkg.get("version")
            version = pep440_to_version(raw) if isinstance(raw, str) else None
            if version is None:
                raise ManifestParseError(f"unsupported version {raw!r}", source=source, record=name)
            # path and directory installs are the project's own code
            pkg_source = pkg.get("source") or {}
            if isinstance(pkg_source, dict) and pkg_source.get("type") in ("directory", "file"):
                continue
            out.append(ResolvedDependency(name=self.normalize_name(name), version=version, source=source))
        return out
