"""Tests for the mover contract and the BaseMover action handler."""

import logging
import threading

import pytest

from LemurHSM.dmplugin import (
    ActionCancelled,
    ActionKind,
    ActionRequest,
    ActionResult,
    ActionStatus,
    BaseMover,
    Mover,
    MoverError,
    MoverIdentity,
    MoverState,
    NoopMover,
    UnsupportedAction,
)


class Reporter:
    def __init__(self):
        self.updates = []
        self.results = []

    def update(self, action_id, done, total):
        self.updates.append((action_id, done, total))

    def complete(self, result):
        self.results.append(result)


class ScriptedMover(BaseMover):
    """Archive blocks until released; restore and remove raise on demand."""

    def __init__(self):
        super().__init__(MoverIdentity("scripted", 3))
        self.entered = threading.Event()
        self.release = threading.Event()
        self.seen_state = None

    def archive(self, request, progress):
        self.seen_state = self.state
        self.entered.set()
        self.release.wait(5)
        progress(5, 10)
        progress(10, 10)
        return self._ok(request, bytes_transferred=10, file_id="key/" + request.primary_path)

    def restore(self, request, progress):
        raise MoverError("backend unavailable")

    def remove(self, request):
        raise ActionCancelled("remove cancelled")

    @staticmethod
    def _ok(request, **kwargs):
        return ActionResult(request.action_id, request.kind, ActionStatus.SUCCEEDED, **kwargs)


def _request(kind, action_id="a1", **kwargs):
    return ActionRequest(action_id=action_id, kind=kind, archive_id=3, **kwargs)


class TestMoverIdentity:
    def test_frozen(self):
        identity = MoverIdentity("fs", 1)
        with pytest.raises(AttributeError):
            identity.archive_id = 2

    def test_negative_archive_id_rejected(self):
        with pytest.raises(ValueError):
            MoverIdentity("fs", -1)


class TestBaseMover:
    def test_state_is_active_while_running(self):
        mover = ScriptedMover()
        reporter = Reporter()
        assert mover.state is MoverState.IDLE

        worker = threading.Thread(
            target=mover.handle, args=(_request(ActionKind.ARCHIVE, primary_path="f"), reporter)
        )
        worker.start()
        assert mover.entered.wait(5)
        assert mover.state is MoverState.ACTIVE
        mover.release.set()
        worker.join(5)

        assert mover.seen_state is MoverState.ACTIVE
        assert mover.state is MoverState.IDLE
        assert reporter.updates == [("a1", 5, 10), ("a1", 10, 10)]
        (result,) = reporter.results
        assert result.succeeded
        assert result.file_id == "key/f"

    def test_mover_error_becomes_failed_result(self, caplog):
        mover = ScriptedMover()
        reporter = Reporter()
        with caplog.at_level(logging.ERROR):
            result = mover.handle(_request(ActionKind.RESTORE, file_id="key/f"), reporter)

        assert result.status is ActionStatus.FAILED
        assert result.error_message == "backend unavailable"
        assert reporter.results == [result]
        assert mover.state is MoverState.IDLE
        assert "restore key/f failed" in caplog.text

    def test_cancellation_becomes_cancelled_result(self):
        mover = ScriptedMover()
        result = mover.handle(_request(ActionKind.REMOVE, primary_path="f"), Reporter())
        assert result.status is ActionStatus.CANCELLED
        assert isinstance(result.error, ActionCancelled)

    def test_unimplemented_actions_are_unsupported(self):
        mover = BaseMover(MoverIdentity("bare", 1))
        for kind in (ActionKind.ARCHIVE, ActionKind.RESTORE, ActionKind.REMOVE):
            result = mover.handle(_request(kind, primary_path="f"), Reporter())
            assert result.status is ActionStatus.FAILED
            assert "does not support" in result.error_message

    def test_cancel_is_left_to_the_plugin(self):
        target = _request(ActionKind.ARCHIVE, primary_path="f")
        cancel = _request(ActionKind.CANCEL, action_id="a2", target_action_id="a1")
        result = NoopMover(3).handle(cancel, Reporter())

        assert result.status is ActionStatus.FAILED
        assert isinstance(result.error, UnsupportedAction)
        assert not target.token.is_cancelled()

    def test_unexpected_errors_propagate(self):
        class Broken(BaseMover):
            def remove(self, request):
                raise KeyError("boom")

        with pytest.raises(KeyError):
            Broken(MoverIdentity("broken", 1)).handle(_request(ActionKind.REMOVE), Reporter())


class TestNoopMover:
    def test_satisfies_protocol(self):
        assert isinstance(NoopMover(), Mover)

    def test_archive_echoes_path_as_file_id(self):
        reporter = Reporter()
        result = NoopMover().handle(_request(ActionKind.ARCHIVE, primary_path="a/b"), reporter)
        assert result.succeeded
        assert result.file_id == "a/b"
        assert result.bytes_transferred == 0

    def test_honours_cancellation(self):
        request = _request(ActionKind.RESTORE)
        request.token.cancel()
        assert NoopMover().handle(request, Reporter()).status is ActionStatus.CANCELLED
