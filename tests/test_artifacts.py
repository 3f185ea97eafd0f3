"""Tests for QR artifact ownership and the threading scheduler."""

from __future__ import annotations

import threading

import pytest

from credential_portal.artifacts import ArtifactReleasedError, ArtifactSlot, QrArtifact
from credential_portal.scheduling import ThreadingScheduler


def test_released_artifact_refuses_reads():
    artifact = QrArtifact(b"png-bytes", label="password:alice")

    artifact.release()
    artifact.release()

    assert artifact.released
    with pytest.raises(ArtifactReleasedError):
        _ = artifact.data


def test_artifact_context_manager_releases():
    with QrArtifact(b"png-bytes") as artifact:
        assert artifact.data == b"png-bytes"
    assert artifact.released


def test_empty_artifact_is_invalid():
    with pytest.raises(ValueError):
        QrArtifact(b"")


def test_slot_keeps_a_single_live_artifact():
    slot = ArtifactSlot()
    first = QrArtifact(b"one")
    second = QrArtifact(b"two")

    slot.replace(first)
    slot.replace(second)

    assert first.released
    assert slot.current is second and not second.released

    slot.release()
    assert second.released
    assert slot.current is None


def test_threading_scheduler_runs_callback():
    fired = threading.Event()

    task = ThreadingScheduler().call_later(0.01, fired.set)

    assert fired.wait(timeout=2)
    assert task.done and not task.cancelled


def test_threading_scheduler_cancel_prevents_callback():
    fired = threading.Event()

    task = ThreadingScheduler().call_later(0.2, fired.set)
    task.cancel()

    assert not fired.wait(timeout=0.4)
    assert task.cancelled and task.done
