# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.dmplugin.__init__",
#   "purpose": "Mover contract and plugin host shared by all LemurHSM backends.",
#   "sections": []
# }
# === /NAVMAP ===

"""Mover contract and plugin host shared by all LemurHSM backends.

Modules:
- cancellation: cooperative cancellation tokens
- mover: identity, request/result types, BaseMover state machine
- plugin: coordinator registration and action dispatch
- noop: a mover that completes every action without moving data
"""

from .cancellation import ActionCancelled, CancellationToken, CancellationTokenGroup
from .mover import (
    ActionKind,
    ActionReporter,
    ActionRequest,
    ActionResult,
    ActionStatus,
    BaseMover,
    Mover,
    MoverError,
    MoverIdentity,
    MoverState,
    ProgressCallback,
    UnsupportedAction,
)
from .noop import NoopMover
from .plugin import CoordinatorChannel, Plugin

__all__ = [
    "ActionCancelled",
    "ActionKind",
    "ActionReporter",
    "ActionRequest",
    "ActionResult",
    "ActionStatus",
    "BaseMover",
    "CancellationToken",
    "CancellationTokenGroup",
    "CoordinatorChannel",
    "Mover",
    "MoverError",
    "MoverIdentity",
    "MoverState",
    "NoopMover",
    "Plugin",
    "ProgressCallback",
    "UnsupportedAction",
]
