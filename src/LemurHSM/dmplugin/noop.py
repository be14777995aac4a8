"""No-op mover used to exercise coordinator wiring without a backend."""

from __future__ import annotations

from .mover import ActionRequest, ActionResult, ActionStatus, BaseMover, MoverIdentity, ProgressCallback


class NoopMover(BaseMover):
    """Accepts every action and completes it immediately with zero bytes."""

    def __init__(self, archive_id: int = 1) -> None:
        super().__init__(MoverIdentity(fs_name="noop", archive_id=archive_id))

    def archive(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        request.token.raise_if_cancelled("archive")
        return ActionResult(
            request.action_id,
            request.kind,
            ActionStatus.SUCCEEDED,
            file_id=request.file_id or request.primary_path,
        )

    def restore(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        request.token.raise_if_cancelled("restore")
        return ActionResult(request.action_id, request.kind, ActionStatus.SUCCEEDED)

    def remove(self, request: ActionRequest) -> ActionResult:
        return ActionResult(request.action_id, request.kind, ActionStatus.SUCCEEDED)
