"""Pytest configuration and fixtures for depseal tests."""
from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Dict, Optional

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from depseal.allowlist import parse_allowlist
from depseal.commitment import SourceArchive

ENV_VARS = (
    "DEPSEAL_DEV_MODE",
    "DEPSEAL_BACKEND",
    "DEPSEAL_ENGINE_KEY",
    "DEPSEAL_TRUSTED_KEYS",
    "DEPSEAL_COMMIT_WORKERS",
    "DEPSEAL_MAX_MEMBER_BYTES",
    "DEPSEAL_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real ~/.depseal and any DEPSEAL_* variables."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "depseal-home"
    monkeypatch.setenv("DEPSEAL_HOME", str(home))
    return home


def make_tar(files: Dict[str, bytes | str], *, gz: bool = True) -> bytes:
    """Build an in-memory tar (gzip by default) from a path -> content map."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz" if gz else "w") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def npm_lock(packages: Dict[str, tuple], lockfile_version: int = 3) -> str:
    """package-lock.json text; ``packages`` maps name -> (version, license|None)."""
    entries: Dict[str, dict] = {"": {"name": "app", "version": "1.0.0"}}
    for name, (version, license_id) in packages.items():
        entry = {"version": version, "resolved": f"https://registry.npmjs.org/{name}/-/{name}-{version}.tgz"}
        if license_id is not None:
            entry["license"] = license_id
        entries[f"node_modules/{name}"] = entry
    return json.dumps({"name": "app", "version": "1.0.0", "lockfileVersion": lockfile_version, "packages": entries})


def npm_archive(packages: Dict[str, tuple], extra: Optional[Dict[str, str]] = None) -> SourceArchive:
    files = {
        "package.json": json.dumps({"name": "app", "version": "1.0.0"}),
        "package-lock.json": npm_lock(packages),
        "src/index.js": "console.log('hello');\n",
    }
    files.update(extra or {})
    return SourceArchive.from_mapping(files)


CARGO_LOCK = """\
# This file is automatically @generated by Cargo.
version = 3

[[package]]
name = "app"
version = "0.1.0"
dependencies = [
 "serde",
 "itoa 1.0.9",
]

[[package]]
name = "itoa"
version = "1.0.9"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "af150ab688ff2122fcef229be89cb50dd66af9e01a4ff320cc137eecc9bacc38"

[[package]]
name = "serde"
version = "1.0.188"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "cf9e0fcba69a370eed61bcf2b728575f726b50b55ba7b6ff9bd1e4c1a6f0e0b1"
"""


@pytest.fixture
def engine_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture
def compliant_archive() -> SourceArchive:
    return npm_archive({"left-pad": ("1.3.0", "MIT"), "lodash": ("4.17.21", "MIT")})


@pytest.fixture
def allowlist():
    deps, _ = parse_allowlist({
        "dependencies": [
            {"name": "left-pad", "minVersion": "1.1.0"},
            {"name": "lodash", "minVersion": "4.17.21"},
        ]
    })
    return deps


@pytest.fixture
def allowlist_file(tmp_path) -> Path:
    path = tmp_path / "allowlist.json"
    path.write_text(json.dumps({
        "dependencies": [
            {"name": "left-pad", "minVersion": "1.1.0"},
            {"name": "lodash", "minVersion": "4.17.21"},
        ]
    }))
    return path
