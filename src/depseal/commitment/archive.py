"""Source archive model and loaders.

A :class:`SourceArchive` is an immutable set of ``(relative path, bytes)``
entries. Loaders read a directory tree or a tar / tar.gz bundle into memory;
nothing about the filesystem (timestamps, permissions, ownership) survives
loading, so the commitment depends on layout and content only.
"""
from __future__ import annotations

import io
import logging
import os
import tarfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Mapping, Tuple

from depseal.errors import ArchiveReadError

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEMBER_BYTES = 256 * 1024 * 1024


def normalize_path(rel: str) -> str:
    """Return the canonical POSIX form of an archive-relative path."""
    if "\x00" in rel:
        raise ArchiveReadError("Null byte in archive path")
    value = rel.replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    pure = PurePosixPath(value)
    if pure.is_absolute():
        raise ArchiveReadError(f"Absolute paths not allowed in archive: {rel!r}")
    if not pure.parts or any(part in ("", ".", "..") for part in pure.parts):
        raise ArchiveReadError(f"Invalid archive path: {rel!r}")
    return pure.as_posix()


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    content: bytes

    @property
    def path_bytes(self) -> bytes:
        return self.path.encode("utf-8")


class SourceArchive:
    """Immutable collection of archive entries, kept sorted by path bytes."""

    def __init__(self, entries: Mapping[str, bytes]):
        normalized: Dict[str, bytes] = {}
        for raw_path, content in entries.items():
            path = normalize_path(raw_path)
            if path in normalized:
                raise ArchiveReadError(f"Duplicate entry in archive: {raw_path!r}")
            normalized[path] = bytes(content)
        ordered = sorted(normalized.items(), key=lambda item: item[0].encode("utf-8"))
        self._entries: Tuple[ArchiveEntry, ...] = tuple(ArchiveEntry(p, c) for p, c in ordered)
        self._index = {entry.path: i for i, entry in enumerate(self._entries)}

    @classmethod
    def from_mapping(cls, entries: Mapping[str, bytes | str]) -> "SourceArchive":
        return cls({k: v.encode("utf-8") if isinstance(v, str) else v for k, v in entries.items()})

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ArchiveEntry]:
        return iter(self._entries)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path in self._index

    @property
    def entries(self) -> Tuple[ArchiveEntry, ...]:
        return self._entries

    @property
    def total_bytes(self) -> int:
        return sum(len(e.content) for e in self._entries)

    def index_of(self, path: str) -> int:
        try:
            return self._index[normalize_path(path)]
        except KeyError:
            raise ArchiveReadError(f"no such file in archive: {path!r}") from None

    def read(self, path: str) -> bytes:
        return self._entries[self.index_of(path)].content

    def paths(self) -> list[str]:
        return [e.path for e in self._entries]


###############################################################################
# Loaders


def load_directory(root: Path, *, max_member_bytes: int = DEFAULT_MAX_MEMBER_BYTES) -> SourceArchive:
    root = Path(root)
    if not root.is_dir():
        raise ArchiveReadError(f"not a directory: {root}")
    entries: Dict[str, bytes] = {}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        for name in dirnames:
            if (Path(dirpath) / name).is_symlink():
                rel = (Path(dirpath) / name).relative_to(root).as_posix()
                raise ArchiveReadError(f"Links not allowed in archive: {rel!r}")
        for name in sorted(filenames):
            full = Path(dirpath) / name
            rel = full.relative_to(root).as_posix()
            if full.is_symlink():
                raise ArchiveReadError(f"Links not allowed in archive: {rel!r}")
            if not full.is_file():
                raise ArchiveReadError(f"Unsupported archive entry type: {rel!r}")
            try:
                size = full.stat().st_size
                if size > max_member_bytes:
                    raise ArchiveReadError(f"Archive file too large: {rel!r} ({size} bytes)")
                entries[rel] = full.read_bytes()
            except OSError as exc:
                raise ArchiveReadError(f"cannot read {rel!r}: {exc}") from exc
    logger.debug("loaded %d files from directory %s", len(entries), root)
    return SourceArchive(entries)


def load_tar_bytes(data: bytes, *, max_member_bytes: int = DEFAULT_MAX_MEMBER_BYTES) -> SourceArchive:
    entries: Dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
            for member in tar.getmembers():
                name = member.name
                if member.isdir():
                    continue
                if member.issym() or member.islnk():
                    raise ArchiveReadError(f"Links not allowed in archive: {name!r}")
                if not member.isreg():
                    raise ArchiveReadError(f"Unsupported archive entry type: {name!r}")
                if member.size > max_member_bytes:
                    raise ArchiveReadError(f"Archive file too large: {name!r} ({member.size} bytes)")
                rel = normalize_path(name)
                if rel in entries:
                    raise ArchiveReadError(f"Duplicate entry in archive: {name!r}")
                src = tar.extractfile(member)
                if src is None:
                    raise ArchiveReadError(f"Failed to read archive entry: {name!r}")
                with src:
                    content = src.read()
                if len(content) != member.size:
                    raise ArchiveReadError(f"Archive entry truncated: {name!r}")
                entries[rel] = content
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise ArchiveReadError(f"cannot read tar archive: {exc}") from exc
    logger.debug("loaded %d files from tar bundle", len(entries))
    return SourceArchive(entries)


def load_archive(path: Path | str, *, max_member_bytes: int = DEFAULT_MAX_MEMBER_BYTES) -> SourceArchive:
    """Load a directory or a tar / tar.gz bundle into a :class:`SourceArchive`."""
    path = Path(path)
    if path.is_dir():
        return load_directory(path, max_member_bytes=max_member_bytes)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ArchiveReadError(f"cannot read archive {path}: {exc}") from exc
    return load_tar_bytes(data, max_member_bytes=max_member_bytes)


__all__ = [
    "ArchiveEntry",
    "SourceArchive",
    "normalize_path",
    "load_archive",
    "load_directory",
    "load_tar_bytes",
]
