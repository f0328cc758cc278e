"""Execution trace recorded by the guest program.

Each step is a small canonical record ``{"phase", "op", "data"}``. The trace
never leaves the producer: backends commit to it with a blinded Merkle tree
and only the root goes into the proof.
"""
from __future__ import annotations

import hashlib
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from depseal.codec import HASH_PREFIX_TRACE_STEP, canonical_encode
from depseal.commitment.merkle import merkle_root

SALT_BYTES = 32


@dataclass(frozen=True)
class TraceStep:
    phase: str
    op: str
    data: Any

    def encode(self) -> bytes:
        return canonical_encode({"phase": self.phase, "op": self.op, "data": self.data})


@dataclass
class ExecutionTrace:
    steps: List[TraceStep] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
    _phase: Optional[str] = None

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        previous = self._phase
        self._phase = name
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = self.timings.get(name, 0.0) + time.perf_counter() - start
            self._phase = previous

    def record(self, op: str, data: Any = None) -> None:
        if self._phase is None:
            raise RuntimeError("trace step recorded outside of a phase")
        self.steps.append(TraceStep(self._phase, op, data))

    @property
    def cycles(self) -> int:
        return len(self.steps)

    def phase_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.phase] = counts.get(step.phase, 0) + 1
        return counts

    def blinded_leaves(self, salts: Optional[List[bytes]] = None) -> Tuple[List[bytes], List[bytes]]:
        """Salted leaf hashes; returns ``(leaves, salts)``."""
        if salts is None:
            salts = [os.urandom(SALT_BYTES) for _ in self.steps]
        if len(salts) != len(self.steps):
            raise ValueError("one salt per trace step is required")
        leaves = [
            hashlib.sha256(HASH_PREFIX_TRACE_STEP + salt + step.encode()).digest()
            for salt, step in zip(salts, self.steps)
        ]
        return leaves, salts

    def commit(self, salts: Optional[List[bytes]] = None) -> bytes:
        if not self.steps:
            raise ValueError("cannot commit an empty trace")
        leaves, _ = self.blinded_leaves(salts)
        return merkle_root(leaves)


__all__ = ["ExecutionTrace", "TraceStep", "SALT_BYTES"]
