"""Binary Merkle tree over archive leaves.

Convention (fixed, must match any independent recomputation):

* leaf hash  = SHA-256(0x00 || u64be(len(path)) || path || u64be(len(content)) || content)
* node hash  = SHA-256(0x01 || left || right)
* odd level  = the last node is paired with itself
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import List

LEAF_TAG = b"\x00"
NODE_TAG = b"\x01"

LEAF_ENCODING_ID = "depseal_leaf_v1:tag00|u64be_path|u64be_content"
NODE_ENCODING_ID = "depseal_node_v1:tag01|sha256|dup_last"


def hash_leaf(path: bytes, content: bytes) -> bytes:
    h = hashlib.sha256()
    h.update(LEAF_TAG)
    h.update(len(path).to_bytes(8, "big"))
    h.update(path)
    h.update(len(content).to_bytes(8, "big"))
    h.update(content)
    return h.digest()


def hash_pair(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(NODE_TAG + left + right).digest()


def build_levels(leaves: List[bytes]) -> List[List[bytes]]:
    if not leaves:
        raise ValueError("cannot build Merkle tree with zero leaves")
    levels: List[List[bytes]] = [list(leaves)]
    current = levels[0]
    while len(current) > 1:
        nxt: List[bytes] = []
        for i in range(0, len(current), 2):
            left = current[i]
            right = current[i + 1] if i + 1 < len(current) else current[i]
            nxt.append(hash_pair(left, right))
        levels.append(nxt)
        current = nxt
    return levels


def root_from_levels(levels: List[List[bytes]]) -> bytes:
    return levels[-1][0]


def merkle_root(leaves: List[bytes]) -> bytes:
    return root_from_levels(build_levels(leaves))


@dataclass(frozen=True)
class MerklePath:
    """Authentication path from a leaf to the root, bottom level first."""

    index: int
    tree_size: int
    siblings: tuple

    def to_json(self) -> dict:
        return {
            "index": self.index,
            "tree_size": self.tree_size,
            "siblings": [s.hex() for s in self.siblings],
        }

    @classmethod
    def from_json(cls, data: dict) -> "MerklePath":
        return cls(
            index=int(data["index"]),
            tree_size=int(data["tree_size"]),
            siblings=tuple(bytes.fromhex(s) for s in data["siblings"]),
        )


def prove(levels: List[List[bytes]], index: int) -> MerklePath:
    if index < 0 or index >= len(levels[0]):
        raise ValueError("index out of range")
    siblings: List[bytes] = []
    idx = index
    for level in levels[:-1]:
        sibling = idx ^ 1
        if sibling >= len(level):
            sibling = idx
        siblings.append(level[sibling])
        idx //= 2
    return MerklePath(index=index, tree_size=len(levels[0]), siblings=tuple(siblings))


def _expected_depth(tree_size: int) -> int:
    depth = 0
    size = tree_size
    while size > 1:
        size = (size + 1) // 2
        depth += 1
    return depth


def verify(root: bytes, leaf: bytes, path: MerklePath) -> bool:
    if path.tree_size <= 0 or not 0 <= path.index < path.tree_size:
        return False
    if len(path.siblings) != _expected_depth(path.tree_size):
        return False
    acc = leaf
    idx = path.index
    level_size = path.tree_size
    for sibling in path.siblings:
        if idx % 2 == 0:
            # the last node of an odd level is paired with itself
            if idx + 1 >= level_size and sibling != acc:
                return False
            acc = hash_pair(acc, sibling)
        else:
            acc = hash_pair(sibling, acc)
        idx //= 2
        level_size = (level_size + 1) // 2
    return acc == root


__all__ = [
    "LEAF_ENCODING_ID",
    "NODE_ENCODING_ID",
    "MerklePath",
    "build_levels",
    "hash_leaf",
    "hash_pair",
    "merkle_root",
    "prove",
    "root_from_levels",
    "verify",
]
