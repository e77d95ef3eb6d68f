"""Photo library access: permission gate and directory-backed photo source."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tif", ".tiff"})


class AuthorizationStatus(StrEnum):
    NOT_DETERMINED = "not_determined"
    AUTHORIZED = "authorized"
    LIMITED = "limited"
    DENIED = "denied"
    RESTRICTED = "restricted"
    UNKNOWN = "unknown"


_READABLE = frozenset({AuthorizationStatus.AUTHORIZED, AuthorizationStatus.LIMITED})


class PhotoAccessDeniedError(PermissionError):
    """Raised when the photo library is read without authorization."""


class PhotoNotFoundError(LookupError):
    """Raised for an unknown photo token."""


class PhotoAccessGate:
    """Tracks whether the photo library may be read.

    Only an undetermined status can change: the first authorization request
    settles it to authorized or denied, later requests report the settled
    status unchanged.
    """

    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED) -> None:
        self._status = AuthorizationStatus(status)

    @property
    def status(self) -> AuthorizationStatus:
        return self._status

    @property
    def can_read(self) -> bool:
        return self._status in _READABLE

    def request_authorization(self, granted: bool) -> AuthorizationStatus:
        """Ask for library access; ``granted`` is the user's answer to the prompt."""
        match self._status:
            case AuthorizationStatus.NOT_DETERMINED:
                self._status = AuthorizationStatus.AUTHORIZED if granted else AuthorizationStatus.DENIED
                logger.info("Photo library access %s", "granted" if granted else "denied")
            case AuthorizationStatus.DENIED | AuthorizationStatus.RESTRICTED:
                logger.info("Photo library access denied or restricted")
            case AuthorizationStatus.AUTHORIZED:
                logger.info("Photo library access already granted")
            case AuthorizationStatus.LIMITED:
                logger.info("Photo library access limited")
            case _:
                logger.warning("Unknown photo library authorization status")
        return self._status

    def ensure_readable(self) -> None:
        if not self.can_read:
            raise PhotoAccessDeniedError(f"Photo library access is {self._status}")


class PhotoLibrary(Protocol):
    """Protocol for a source of user photos."""

    async def list_photos(self) -> list[str]:
        """Return the selectable photo tokens."""
        ...

    async def load(self, token: str) -> bytes:
        """Return the raw bytes of the photo identified by ``token``."""
        ...


class DirectoryPhotoLibrary:
    """Photos stored as image files under a single directory.

    Tokens are paths relative to the root, using forward slashes. All
    filesystem work runs in a worker thread.
    """

    def __init__(self, root: Path | str, gate: PhotoAccessGate) -> None:
        self._root = Path(root)
        self._gate = gate

    @property
    def root(self) -> Path:
        return self._root

    async def list_photos(self) -> list[str]:
        self._gate.ensure_readable()
        return await asyncio.to_thread(self._scan)

    async def load(self, token: str) -> bytes:
        self._gate.ensure_readable()
        return await asyncio.to_thread(self._read, token)

    def _scan(self) -> list[str]:
        if not self._root.is_dir():
            logger.warning("Photo library directory %s does not exist", self._root)
            return []
        return sorted(
            path.relative_to(self._root).as_posix()
            for path in self._root.rglob("*")
            if path.is_file() and path.suffix.lower() in IMAGE_SUFFIXES
        )

    def _read(self, token: str) -> bytes:
        path = self._resolve(token)
        try:
            return path.read_bytes()
        except OSError:
            raise PhotoNotFoundError(f"Unknown photo: {token}") from None

    def _resolve(self, token: str) -> Path:
        if not token:
            raise PhotoNotFoundError("Unknown photo: empty token")
        try:
            root = self._root.resolve()
            path = (root / token).resolve()
            is_photo = path.suffix.lower() in IMAGE_SUFFIXES and path.is_file()
        except (OSError, ValueError):
            raise PhotoNotFoundError(f"Unknown photo: {token!r}") from None
        if not path.is_relative_to(root) or path == root or not is_photo:
            raise PhotoNotFoundError(f"Unknown photo: {token}")
        return path
