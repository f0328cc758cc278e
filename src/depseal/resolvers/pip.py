"""pip resolver: fully pinned ``requirements.txt`` (e.g. ``pip freeze`` or
``pip-compile`` output).

Every requirement must be pinned with ``==``. Nested requirement files and
editable installs are refused because the dependencies they pull in would not
be visible here. Names are normalized per PEP 503 and PEP 440 versions are
mapped onto the version model (``1.0rc1`` -> ``1.0.0-rc.1``).
"""
from __future__ import annotations

import re
from typing import List, Optional

from depseal.errors import ManifestParseError
from depseal.version import Version
from .base import ResolvedDependency, Resolver, register_resolver

_REQUIREMENT = re.compile(
    r"^(?P<name>[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)"
    r"\s*(?:\[[^\]]*\])?"
    r"\s*(?P<op>===|==|>=|<=|~=|!=|>|<|@)?"
    r"\s*(?P<rest>[^;]*?)"
    r"\s*(?:;.*)?$"
)

_PEP440 = re.compile(
    r"^v?(?P<release>\d+(?:\.\d+)*)"
    r"(?:[-_.]?(?P<pre_l>a|alpha|b|beta|c|rc|pre|preview)[-_.]?(?P<pre_n>\d*))?"
    r"(?:[-_.]?(?P<post_l>post|rev|r)[-_.]?(?P<post_n>\d*))?"
    r"(?:[-_.]?(?P<dev_l>dev)[-_.]?(?P<dev_n>\d*))?"
    r"(?:\+(?P<local>[a-z0-9]+(?:[-_.][a-z0-9]+)*))?$",
    re.IGNORECASE,
)

_PRE_LABELS = {
    "a": "alpha",
    "alpha": "alpha",
    "b": "beta",
    "beta": "beta",
    "c": "rc",
    "rc": "rc",
    "pre": "rc",
    "preview": "rc",
}

_SKIPPED_OPTIONS = (
    "-i",
    "--index-url",
    "--extra-index-url",
    "--trusted-host",
    "-f",
    "--find-links",
    "--no-binary",
    "--only-binary",
    "--prefer-binary",
    "--require-hashes",
    "--pre",
    "--no-index",
)
_REFUSED_OPTIONS = ("-r", "--requirement", "-c", "--constraint", "-e", "--editable")


def normalize_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def pep440_to_version(text: str) -> Optional[Version]:
    """Map a PEP 440 version onto :class:`Version`; ``None`` if it has no mapping."""
    m = _PEP440.match(text.strip())
    if not m:
        return None
    release = [int(p) for p in m.group("release").split(".")]
    if len(release) > 3:
        return None
    release += [0] * (3 - len(release))
    prerelease: tuple = ()
    if m.group("pre_l"):
        if m.group("dev_l"):
            return None
        prerelease = (_PRE_LABELS[m.group("pre_l").lower()], int(m.group("pre_n") or 0))
    elif m.group("dev_l"):
        # dev releases sort before alpha: numeric identifiers rank below text
        prerelease = (0, "dev", int(m.group("dev_n") or 0))
    build_parts = []
    if m.group("post_l"):
        build_parts.append(f"post.{int(m.group('post_n') or 0)}")
    if m.group("local"):
        build_parts.append(re.sub(r"[-_]", ".", m.group("local").lower()))
    return Version(release[0], release[1], release[2], prerelease, ".".join(build_parts))


def _logical_lines(text: str):
    buffer = ""
    start = 0
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = re.sub(r"(^|\s)#.*$", "", raw).rstrip()
        if not buffer:
            start = lineno
        if line.endswith("\\"):
            buffer += line[:-1] + " "
            continue
        buffer += line
        if buffer.strip():
            yield start, buffer.strip()
        buffer = ""
    if buffer.strip():
        yield start, buffer.strip()


@register_resolver
class PipResolver(Resolver):
    name = "pip"
    lockfile_names = ("requirements.txt", "requirements.lock")
    min_manager_version = "8.0.0"
    vendored_dirs = (".venv", "venv", "site-packages")
    name_normalization = "pep503"

    def normalize_name(self, name: str) -> str:
        return normalize_name(name)

    def parse(self, source: str, text: str) -> List[ResolvedDependency]:
        out: List[ResolvedDependency] = []
        for lineno, line in _logical_lines(text):
            record = f"line {lineno}"
            tokens = line.split()
            head = tokens[0]
            if head.startswith("-"):
                option = head.split("=", 1)[0]
                if option in _REFUSED_OPTIONS:
                    raise ManifestParseError(
                        f"{option} is not supported; flatten the requirements first", source=source, record=record
                    )
                if option in _SKIPPED_OPTIONS:
                    continue
                raise ManifestParseError(f"unknown option {option}", source=source, record=record)

            requirement = " ".join(t for t in tokens if not t.startswith("--hash"))
            m = _REQUIREMENT.match(requirement)
            if not m:
                raise ManifestParseError(f"cannot parse requirement {requirement!r}", source=source, record=record)
            if m.group("op") != "==":
                raise ManifestParseError(
                    f"requirement {m.group('name')!r} is not pinned with ==", source=source, record=record
                )
            version = pep440_to_version(m.group("rest"))
            if version is None:
                raise ManifestParseError(
                    f"unsupported version {m.group('rest')!r}", source=source, record=record
                )
            name = self.normalize_name(m.group("name"))
            out.append(ResolvedDependency(name=name, version=version, source=source))
        return out
