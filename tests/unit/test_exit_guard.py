"""Unit tests for the process-wide exit guard registry."""

from __future__ import annotations

from typing import List
from unittest import mock

import pytest

from embeddb.supervisor import exit_guard


@pytest.fixture
def fake_atexit():
    """Replace atexit so tests never leave real hooks behind."""
    with mock.patch.object(exit_guard, "atexit") as fake:
        with mock.patch.object(exit_guard, "_hook_installed", False):
            yield fake


class TestExitGuard:
    def test_register_runs_action_once(self, fake_atexit) -> None:
        calls: List[str] = []
        assert exit_guard.register("db-1", lambda: calls.append("db-1"))

        exit_guard.run_all()
        exit_guard.run_all()

        assert calls == ["db-1"]
        assert not exit_guard.is_registered("db-1")

    def test_duplicate_registration_is_ignored(self, fake_atexit) -> None:
        calls: List[str] = []
        assert exit_guard.register("db-1", lambda: calls.append("first"))
        assert not exit_guard.register("db-1", lambda: calls.append("second"))

        exit_guard.run_all()

        assert calls == ["first"]

    def test_single_atexit_hook_for_many_actions(self, fake_atexit) -> None:
        exit_guard.register("db-1", lambda: None)
        exit_guard.register("db-2", lambda: None)

        fake_atexit.register.assert_called_once_with(exit_guard.run_all)
        exit_guard.run_all()

    def test_hook_is_removed_when_registry_empties(self, fake_atexit) -> None:
        exit_guard.register("db-1", lambda: None)
        exit_guard.register("db-2", lambda: None)

        assert exit_guard.unregister("db-1")
        fake_atexit.unregister.assert_not_called()
        assert exit_guard.unregister("db-2")
        fake_atexit.unregister.assert_called_once_with(exit_guard.run_all)

    def test_unregister_unknown_key(self, fake_atexit) -> None:
        assert not exit_guard.unregister("nope")

    def test_failing_action_does_not_stop_the_others(self, fake_atexit, caplog: pytest.LogCaptureFixture) -> None:
        calls: List[str] = []

        def explode() -> None:
            raise RuntimeError("boom")

        exit_guard.register("bad", explode)
        exit_guard.register("good", lambda: calls.append("good"))

        exit_guard.run_all()

        assert calls == ["good"]
        assert "boom" in caplog.text
