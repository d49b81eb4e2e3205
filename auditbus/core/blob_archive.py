"""Durable blob archive for raw event payloads.

Objects are addressed by a derived key (``2020/10/21/<event-id>``), not by
content hash, so re-archiving the same event overwrites the same object.

Storage layout::

    {base_path}/objects/{key}          raw payload bytes
    {base_path}/meta/{key}.json        {"content_type": ..., "size_bytes": ...}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from auditbus.core.errors import (
    ConstraintViolation,
    InvalidKey,
    ObjectNotFound,
    PermissionDenied,
    StoreUnavailable,
)
from auditbus.models.records import ArchiveRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobArchive(Protocol):
    """Capability interface the Ingestion Workflow depends on."""

    def put(self, key: str, body: bytes, content_type: str) -> ArchiveRecord:
        """Write *body* under *key*, replacing any existing object.

        Raises ``StoreUnavailable`` or ``PermissionDenied``, and
        ``InvalidKey`` for a key that does not name a single object.
        """
        ...

    def get(self, key: str) -> bytes:
        """Return the object bytes.  Raises ``ObjectNotFound``."""
        ...


def _translate_os_error(exc: OSError, action: str, key: str) -> Exception:
    if isinstance(exc, PermissionError):
        return PermissionDenied(f"Permission denied to {action} archive key {key!r}: {exc}")
    if isinstance(exc, (FileExistsError, NotADirectoryError, IsADirectoryError)):
        return ConstraintViolation(
            f"Archive key {key!r} conflicts with an existing object: {exc}"
        )
    return StoreUnavailable(f"Archive unavailable to {action} key {key!r}: {exc}")


class FileBlobArchive:
    """Filesystem-backed blob archive.

    Each ``put`` is atomic per key: bytes are written to a temp file in the
    target directory and moved into place with ``os.replace``.

    Parameters
    ----------
    base_path:
        Root directory of the archive (the "bucket").
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    @staticmethod
    def _check_key(key: str) -> PurePosixPath:
        """Reject keys that do not name exactly one object under the root.

        Keys are used verbatim: empty, ``.`` and ``..`` segments are refused
        rather than normalized, so two distinct keys never share a file.
        """
        segments = key.split("/")
        if "\\" in key or any(s in ("", ".", "..") for s in segments):
            raise InvalidKey(f"Invalid archive key: {key!r}")
        return PurePosixPath(*segments)

    def _object_path(self, key: str) -> Path:
        return self._base / "objects" / self._check_key(key)

    def _meta_path(self, key: str) -> Path:
        rel = self._check_key(key)
        return self._base / "meta" / rel.parent / f"{rel.name}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(
        self, key: str, body: bytes, content_type: str = "application/json"
    ) -> ArchiveRecord:
        """Store *body* under *key*.  Last write wins."""
        obj_path = self._object_path(key)
        meta = {"content_type": content_type, "size_bytes": len(body)}
        try:
            # Metadata first: the object is only visible once its bytes land.
            self._atomic_write(self._meta_path(key), json.dumps(meta).encode("utf-8"))
            self._atomic_write(obj_path, body)
        except OSError as exc:
            raise _translate_os_error(exc, "write", key) from exc

        logger.debug("FileBlobArchive: wrote %d bytes to %s", len(body), key)
        return ArchiveRecord(
            key=key, body=body, content_type=content_type, size_bytes=len(body)
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, key: str) -> bytes:
        """Retrieve object bytes by key."""
        path = self._object_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFound(f"Archive object not found: {key}") from exc
        except OSError as exc:
            raise _translate_os_error(exc, "read", key) from exc

    def head(self, key: str) -> ArchiveRecord:
        """Return the object's metadata without its body."""
        if not self.exists(key):
            raise ObjectNotFound(f"Archive object not found: {key}")
        try:
            meta = json.loads(self._meta_path(key).read_bytes())
        except FileNotFoundError:
            meta = {}
        except OSError as exc:
            raise _translate_os_error(exc, "read", key) from exc
        return ArchiveRecord(
            key=key,
            content_type=meta.get("content_type", "application/octet-stream"),
            size_bytes=meta.get("size_bytes", self._object_path(key).stat().st_size),
        )

    def exists(self, key: str) -> bool:
        """Check if an object exists under *key*."""
        return self._object_path(key).is_file()

    def list_keys(self, prefix: str = "") -> list[str]:
        """Return all stored keys starting with *prefix*, sorted."""
        root = self._base / "objects"
        if not root.exists():
            return []
        keys = [
            path.relative_to(root).as_posix()
            for path in root.rglob("*")
            if path.is_file() and not path.name.startswith(".")
        ]
        return sorted(k for k in keys if k.startswith(prefix))
