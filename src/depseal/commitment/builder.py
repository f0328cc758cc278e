"""Commitment builder: archive -> CommitmentRoot, plus membership proofs."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from depseal.errors import ArchiveReadError
from .archive import ArchiveEntry, SourceArchive, normalize_path
from .merkle import (
    MerklePath,
    build_levels,
    hash_leaf,
    prove as merkle_prove,
    root_from_levels,
    verify as merkle_verify,
)

logger = logging.getLogger(__name__)

# below this many entries a thread pool costs more than it saves
PARALLEL_THRESHOLD = 64


@dataclass(frozen=True)
class CommitmentRoot:
    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != 32:
            raise ValueError("commitment root must be 32 bytes")

    @property
    def hex(self) -> str:
        return self.digest.hex()

    def __str__(self) -> str:
        return self.hex


def _leaf(entry: ArchiveEntry) -> bytes:
    return hash_leaf(entry.path_bytes, entry.content)


def leaf_hashes(archive: SourceArchive, workers: int = 1) -> List[bytes]:
    """Hash every entry in sorted order; ``workers > 1`` maps across threads."""
    entries = archive.entries
    if not entries:
        raise ArchiveReadError("archive contains no files")
    if workers > 1 and len(entries) >= PARALLEL_THRESHOLD:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(_leaf, entries))
    return [_leaf(entry) for entry in entries]


def commitment_levels(archive: SourceArchive, workers: int = 1) -> List[List[bytes]]:
    return build_levels(leaf_hashes(archive, workers=workers))


def commit_archive(archive: SourceArchive, workers: int = 1) -> CommitmentRoot:
    """Compute the canonical Merkle root of ``archive``."""
    levels = commitment_levels(archive, workers=workers)
    root = CommitmentRoot(root_from_levels(levels))
    logger.debug("committed %d entries (%d bytes) -> %s", len(archive), archive.total_bytes, root.hex)
    return root


@dataclass(frozen=True)
class MembershipProof:
    path: str
    merkle_path: MerklePath

    def to_json(self) -> dict:
        return {"path": self.path, **self.merkle_path.to_json()}

    @classmethod
    def from_json(cls, data: dict) -> "MembershipProof":
        return cls(path=str(data["path"]), merkle_path=MerklePath.from_json(data))


def prove_membership(
    archive: SourceArchive,
    path: str,
    levels: Optional[List[List[bytes]]] = None,
) -> MembershipProof:
    """Authentication path showing ``path`` is a leaf of the archive commitment."""
    index = archive.index_of(path)
    if levels is None:
        levels = commitment_levels(archive)
    return MembershipProof(path=archive.entries[index].path, merkle_path=merkle_prove(levels, index))


def verify_membership(root: CommitmentRoot, path: str, content: bytes, proof: MembershipProof) -> bool:
    try:
        canonical = normalize_path(path)
    except ArchiveReadError:
        return False
    if canonical != proof.path:
        return False
    leaf = hash_leaf(canonical.encode("utf-8"), content)
    return merkle_verify(root.digest, leaf, proof.merkle_path)


__all__ = [
    "CommitmentRoot",
    "MembershipProof",
    "commit_archive",
    "commitment_levels",
    "leaf_hashes",
    "prove_membership",
    "verify_membership",
]
