# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.dmplugin.mover",
#   "purpose": "Mover contract: identity, action request/result types, and the two-state action handler",
#   "sections": [
#     {"id": "identity", "name": "MoverIdentity", "anchor": "IDN", "kind": "api"},
#     {"id": "actions", "name": "Action Request & Result", "anchor": "ACT", "kind": "api"},
#     {"id": "protocols", "name": "Mover & Reporter Protocols", "anchor": "PRO", "kind": "api"},
#     {"id": "base", "name": "BaseMover", "anchor": "BAS", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Capability surface a coordinator uses to route HSM actions to a mover.

A mover declares an immutable :class:`MoverIdentity` (filesystem name plus
archive backend id) and exposes one handler per action kind.  The coordinator
hands over an :class:`ActionRequest`; :meth:`BaseMover.handle` runs it, keeps
the mover's ``IDLE``/``ACTIVE`` state, converts mover errors into a failed
:class:`ActionResult`, and reports progress and the terminal outcome through an
:class:`ActionReporter`.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, runtime_checkable

from .cancellation import ActionCancelled, CancellationToken

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
"""Called with ``(bytes_done, bytes_total)`` while a transfer runs."""


class MoverError(RuntimeError):
    """Base class for failures a mover reports back to the coordinator."""


class UnsupportedAction(MoverError):
    """Raised when a mover has no handler for the requested action kind."""


# ============================================================================
# Identity & actions
# ============================================================================


@dataclass(frozen=True)
class MoverIdentity:
    """Routing identity declared once at startup."""

    fs_name: str
    archive_id: int

    def __post_init__(self) -> None:
        if self.archive_id < 0:
            raise ValueError(f"archive_id must be non-negative, got {self.archive_id}")


class ActionKind(str, enum.Enum):
    ARCHIVE = "archive"
    RESTORE = "restore"
    REMOVE = "remove"
    CANCEL = "cancel"


class ActionStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MoverState(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class ActionRequest:
    """One coordinator request.

    Attributes:
        action_id: Coordinator-assigned identifier, echoed in the result.
        kind: What to do.
        archive_id: Backend the request is tagged for.
        primary_path: Object name relative to the mount root.
        file_id: Store key recorded by a previous archive (restore/remove).
        write_path: Destination for restored data; defaults to the file path.
        target_action_id: For ``CANCEL``, the id of the action to cancel.
        token: Cancellation signal for this action.
    """

    action_id: str
    kind: ActionKind
    archive_id: int
    primary_path: str = ""
    file_id: Optional[str] = None
    write_path: Optional[str] = None
    target_action_id: Optional[str] = None
    token: CancellationToken = field(default_factory=CancellationToken)


@dataclass
class ActionResult:
    """Terminal outcome of one action."""

    action_id: str
    kind: ActionKind
    status: ActionStatus
    bytes_transferred: int = 0
    file_id: Optional[str] = None
    error: Optional[BaseException] = None
    degradation: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ActionStatus.SUCCEEDED

    @property
    def error_message(self) -> Optional[str]:
        return None if self.error is None else str(self.error)


# ============================================================================
# Protocols
# ============================================================================


@runtime_checkable
class ActionReporter(Protocol):
    """Channel through which a mover reports progress and completion."""

    def update(self, action_id: str, done: int, total: int) -> None:
        ...

    def complete(self, result: ActionResult) -> None:
        ...


@runtime_checkable
class Mover(Protocol):
    """Narrow capability interface implemented by every mover backend."""

    @property
    def identity(self) -> MoverIdentity:
        ...

    def handle(self, request: ActionRequest, reporter: ActionReporter) -> ActionResult:
        ...


# ============================================================================
# BaseMover
# ============================================================================


class BaseMover:
    """Shared action plumbing for concrete movers.

    Subclasses override :meth:`archive`, :meth:`restore`, and :meth:`remove`;
    each returns an :class:`ActionResult` or raises a :class:`MoverError`.
    Several actions may run concurrently on one mover; the mover is ``ACTIVE``
    while at least one is in flight.
    """

    def __init__(self, identity: MoverIdentity, *, log: Optional[logging.Logger] = None) -> None:
        self._identity = identity
        self._log = log or logger
        self._in_flight = 0
        self._state_lock = threading.Lock()

    @property
    def identity(self) -> MoverIdentity:
        return self._identity

    @property
    def fs_name(self) -> str:
        return self._identity.fs_name

    @property
    def archive_id(self) -> int:
        return self._identity.archive_id

    @property
    def state(self) -> MoverState:
        with self._state_lock:
            return MoverState.ACTIVE if self._in_flight else MoverState.IDLE

    def archive(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        raise UnsupportedAction(f"{self.fs_name} does not support archive")

    def restore(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        raise UnsupportedAction(f"{self.fs_name} does not support restore")

    def remove(self, request: ActionRequest) -> ActionResult:
        raise UnsupportedAction(f"{self.fs_name} does not support remove")

    def handle(self, request: ActionRequest, reporter: ActionReporter) -> ActionResult:
        """Run ``request`` to completion and report its terminal result."""

        def progress(done: int, total: int) -> None:
            reporter.update(request.action_id, done, total)

        with self._state_lock:
            self._in_flight += 1
        try:
            if request.kind is ActionKind.ARCHIVE:
                result = self.archive(request, progress)
            elif request.kind is ActionKind.RESTORE:
                result = self.restore(request, progress)
            elif request.kind is ActionKind.REMOVE:
                result = self.remove(request)
            else:
                raise UnsupportedAction(
                    f"{self.fs_name} cannot handle {request.kind.value} requests"
                )
        except ActionCancelled as exc:
            self._log.info(
                "%s %s cancelled",
                request.kind.value,
                request.primary_path or request.file_id,
                extra={"action_id": request.action_id},
            )
            result = ActionResult(
                request.action_id, request.kind, ActionStatus.CANCELLED, error=exc
            )
        except MoverError as exc:
            self._log.error(
                "%s %s failed: %s",
                request.kind.value,
                request.primary_path or request.file_id,
                exc,
                extra={"action_id": request.action_id, "error_type": type(exc).__name__},
            )
            result = ActionResult(request.action_id, request.kind, ActionStatus.FAILED, error=exc)
        finally:
            with self._state_lock:
                self._in_flight -= 1

        reporter.complete(result)
        return result


__all__ = [
    "ActionKind",
    "ActionReporter",
    "ActionRequest",
    "ActionResult",
    "ActionStatus",
    "BaseMover",
    "Mover",
    "MoverError",
    "MoverIdentity",
    "MoverState",
    "ProgressCallback",
    "UnsupportedAction",
]
