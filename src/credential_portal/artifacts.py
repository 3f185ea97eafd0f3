"""Scoped handles over QR images returned by the credential backend."""

from __future__ import annotations

import logging
from typing import Optional

LOGGER = logging.getLogger(__name__)


class ArtifactReleasedError(RuntimeError):
    """Raised when reading an artifact after it was released."""


class QrArtifact:
    """Displayable QR image owned by a single flow.

    The bytes are dropped on :meth:`release`; reading :attr:`data` afterwards
    raises :class:`ArtifactReleasedError`.
    """

    def __init__(self, data: bytes, *, content_type: str = "image/png", label: str = "") -> None:
        if not data:
            raise ValueError("QR artifact requires non-empty image data")
        self._data: Optional[bytes] = data
        self.content_type = content_type
        self.label = label
        self.size = len(data)

    def __enter__(self) -> "QrArtifact":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size} bytes"
        return f"QrArtifact(label={self.label!r}, content_type={self.content_type!r}, {state})"

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise ArtifactReleasedError(f"QR artifact '{self.label}' was already released")
        return self._data

    def release(self) -> None:
        if self._data is not None:
            LOGGER.debug("Releasing QR artifact %s (%s bytes)", self.label, self.size)
        self._data = None


class ArtifactSlot:
    """Holds at most one live artifact; replacing it releases the previous one."""

    def __init__(self) -> None:
        self._artifact: Optional[QrArtifact] = None

    @property
    def current(self) -> Optional[QrArtifact]:
        return self._artifact

    def replace(self, artifact: QrArtifact) -> None:
        previous = self._artifact
        self._artifact = artifact
        if previous is not None and previous is not artifact:
            previous.release()

    def release(self) -> None:
        if self._artifact is not None:
            self._artifact.release()
        self._artifact = None


__all__ = ["ArtifactReleasedError", "ArtifactSlot", "QrArtifact"]
