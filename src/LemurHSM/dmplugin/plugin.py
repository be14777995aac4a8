# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.dmplugin.plugin",
#   "purpose": "Register movers with a coordinator channel and dispatch actions onto worker threads",
#   "sections": [
#     {"id": "channel", "name": "CoordinatorChannel", "anchor": "CHN", "kind": "api"},
#     {"id": "plugin", "name": "Plugin", "anchor": "PLG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Coordinator-facing plugin host.

The coordinator's wire format is opaque here: it is reached through a
:class:`CoordinatorChannel` that accepts mover registrations and receives
progress updates and terminal results.  :class:`Plugin` routes every request
to the mover registered for the request's archive id and runs each action on
its own worker thread.  A ``CANCEL`` request names the action it targets in
``target_action_id`` and fires that action's cancellation token; its own
``action_id`` identifies the acknowledgement.
"""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import Dict, Optional, Protocol, runtime_checkable

from .cancellation import CancellationTokenGroup
from .mover import (
    ActionKind,
    ActionRequest,
    ActionResult,
    ActionStatus,
    Mover,
    MoverError,
    MoverIdentity,
    UnsupportedAction,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class CoordinatorChannel(Protocol):
    """Registration plus the reporting half of the coordinator protocol."""

    def register(self, identity: MoverIdentity) -> None:
        ...

    def update(self, action_id: str, done: int, total: int) -> None:
        ...

    def complete(self, result: ActionResult) -> None:
        ...


class Plugin:
    """Hosts movers and dispatches coordinator actions to them."""

    def __init__(
        self,
        channel: CoordinatorChannel,
        *,
        max_workers: int = 8,
        log: Optional[logging.Logger] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._channel = channel
        self._log = log or logger
        self._movers: Dict[int, Mover] = {}
        self._in_flight: Dict[str, ActionRequest] = {}
        self._lock = threading.Lock()
        self._tokens = CancellationTokenGroup()
        self._executor = futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="lhsm-action"
        )
        self._stopped = False

    def add_mover(self, mover: Mover) -> None:
        """Register ``mover`` with the coordinator under its archive id."""

        identity = mover.identity
        with self._lock:
            if identity.archive_id in self._movers:
                raise ValueError(f"archive id {identity.archive_id} is already registered")
            self._movers[identity.archive_id] = mover
        self._channel.register(identity)
        self._log.info(
            "Registered mover %s for archive %d",
            identity.fs_name,
            identity.archive_id,
            extra={"fs_name": identity.fs_name, "archive_id": identity.archive_id},
        )

    @property
    def movers(self) -> Dict[int, Mover]:
        with self._lock:
            return dict(self._movers)

    def dispatch(self, request: ActionRequest) -> "futures.Future[ActionResult]":
        """Start ``request`` and return a future for its terminal result."""

        if self._stopped:
            raise RuntimeError("plugin has been stopped")

        if request.kind is ActionKind.CANCEL:
            return self._completed(self._cancel(request))

        with self._lock:
            mover = self._movers.get(request.archive_id)
            if mover is not None:
                self._in_flight[request.action_id] = request
        if mover is None:
            error = UnsupportedAction(f"no mover registered for archive {request.archive_id}")
            result = ActionResult(request.action_id, request.kind, ActionStatus.FAILED, error=error)
            self._log.error("%s", error, extra={"action_id": request.action_id})
            self._channel.complete(result)
            return self._completed(result)

        self._tokens.add_token(request.token)
        return self._executor.submit(self._run, mover, request)

    def stop(self, *, wait: bool = True) -> None:
        """Cancel in-flight actions and shut the worker pool down."""

        self._stopped = True
        self._tokens.cancel_all()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "Plugin":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self, mover: Mover, request: ActionRequest) -> ActionResult:
        try:
            return mover.handle(request, self._channel)
        except Exception as exc:
            self._log.exception(
                "Unexpected failure running %s for %s",
                request.kind.value,
                request.primary_path or request.file_id,
                extra={"action_id": request.action_id},
            )
            result = ActionResult(request.action_id, request.kind, ActionStatus.FAILED, error=exc)
            self._channel.complete(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(request.action_id, None)
            self._tokens.remove_token(request.token)

    def _cancel(self, request: ActionRequest) -> ActionResult:
        target_id = request.target_action_id
        with self._lock:
            target = self._in_flight.get(target_id) if target_id is not None else None
        if target is None:
            result = ActionResult(
                request.action_id,
                request.kind,
                ActionStatus.FAILED,
                error=MoverError(f"no in-flight action {target_id} to cancel"),
            )
        else:
            target.token.cancel()
            self._log.info(
                "Cancelling %s for %s",
                target.kind.value,
                target.primary_path or target.file_id,
                extra={"action_id": target_id, "cancel_id": request.action_id},
            )
            result = ActionResult(request.action_id, request.kind, ActionStatus.SUCCEEDED)
        self._channel.complete(result)
        return result

    @staticmethod
    def _completed(result: ActionResult) -> "futures.Future[ActionResult]":
        future: "futures.Future[ActionResult]" = futures.Future()
        future.set_result(result)
        return future


__all__ = ["CoordinatorChannel", "Plugin"]
