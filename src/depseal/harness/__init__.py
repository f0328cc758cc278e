"""Verifiable execution harness: guest program, trace, backends, prover."""
from __future__ import annotations

from .backends import (
    AttestedBackend,
    DevBackend,
    ExecutionBackend,
    available_backends,
    backend_for_proof,
    get_backend,
    register_backend,
)
from .guest import GuestInput, GuestOutput, image_descriptor, image_id, run_guest
from .prover import DEV_MODE_ENV, ProofOutcome, Prover, ProverConfig
from .trace import ExecutionTrace, TraceStep

__all__ = [
    "AttestedBackend",
    "DevBackend",
    "ExecutionBackend",
    "available_backends",
    "backend_for_proof",
    "get_backend",
    "register_backend",
    "GuestInput",
    "GuestOutput",
    "image_descriptor",
    "image_id",
    "run_guest",
    "DEV_MODE_ENV",
    "ProofOutcome",
    "Prover",
    "ProverConfig",
    "ExecutionTrace",
    "TraceStep",
]
