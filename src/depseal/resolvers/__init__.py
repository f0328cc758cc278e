"""Manifest resolvers, one per package manager.

Importing this package registers the built-in resolvers (cargo, npm, pip,
poetry). Additional managers register themselves with
:func:`register_resolver`; the policy engine never needs to change.
"""
from __future__ import annotations

from .base import (
    DependencySet,
    PackageManagerSpec,
    ResolvedDependency,
    Resolver,
    available_managers,
    get_resolver,
    register_resolver,
    resolve,
    resolver_descriptors,
)
from . import cargo, npm, pip, poetry  # noqa: F401  (registration side effect)

__all__ = [
    "DependencySet",
    "PackageManagerSpec",
    "ResolvedDependency",
    "Resolver",
    "available_managers",
    "get_resolver",
    "register_resolver",
    "resolve",
    "resolver_descriptors",
]
