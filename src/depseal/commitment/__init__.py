"""Canonical commitment of a source archive."""
from __future__ import annotations

from .archive import ArchiveEntry, SourceArchive, load_archive, load_directory, load_tar_bytes, normalize_path
from .builder import (
    CommitmentRoot,
    MembershipProof,
    commit_archive,
    commitment_levels,
    leaf_hashes,
    prove_membership,
    verify_membership,
)

__all__ = [
    "ArchiveEntry",
    "SourceArchive",
    "load_archive",
    "load_directory",
    "load_tar_bytes",
    "normalize_path",
    "CommitmentRoot",
    "MembershipProof",
    "commit_archive",
    "commitment_levels",
    "leaf_hashes",
    "prove_membership",
    "verify_membership",
]
