# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.dmplugin.cancellation",
#   "purpose": "Provide cooperative cancellation tokens shared by mover actions and transfer workers",
#   "sections": [
#     {"id": "errors", "name": "ActionCancelled", "anchor": "ERR", "kind": "api"},
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"},
#     {"id": "group", "name": "CancellationTokenGroup", "anchor": "GRP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Cooperative cancellation primitives shared by mover actions.

Every archive, restore, or remove action runs with its own
:class:`CancellationToken`.  Transfer workers and the pacer check the token
between network calls; nothing is interrupted forcibly so a cancelled upload
simply never issues its commit.  Child tokens let a transfer abort its sibling
workers on the first failure without cancelling the whole action.
"""

from __future__ import annotations

import threading
from typing import Optional


class ActionCancelled(RuntimeError):
    """Raised when an action observes that its cancellation token fired."""


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    A token created with a ``parent`` reports cancellation when either itself
    or any ancestor has been cancelled.

    Examples:
        >>> token = CancellationToken()
        >>> child = token.child()
        >>> token.cancel()
        >>> child.is_cancelled()
        True
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._parent = parent

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return True once this token or one of its ancestors was cancelled."""
        if self._is_cancelled.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True if cancelled meanwhile.

        Parent cancellation is observed at the end of the wait, so callers
        waiting in a loop should keep ``timeout`` short.
        """
        if self._is_cancelled.wait(timeout):
            return True
        return self.is_cancelled()

    def raise_if_cancelled(self, what: str = "action") -> None:
        """Raise :class:`ActionCancelled` when cancellation has been requested."""
        if self.is_cancelled():
            raise ActionCancelled(f"{what} cancelled")

    def child(self) -> "CancellationToken":
        """Return a new token that is cancelled whenever this one is."""
        return CancellationToken(parent=self)


class CancellationTokenGroup:
    """A group of cancellation tokens that can be cancelled together.

    The plugin keeps one group so that shutting down cancels every in-flight
    action at once.
    """

    def __init__(self) -> None:
        self._tokens: list[CancellationToken] = []
        self._lock = threading.Lock()
        self._cancelled = False

    def add_token(self, token: CancellationToken) -> None:
        with self._lock:
            self._tokens.append(token)
            if self._cancelled:
                token.cancel()

    def create_token(self) -> CancellationToken:
        """Create a new token and add it to this group."""
        token = CancellationToken()
        self.add_token(token)
        return token

    def remove_token(self, token: CancellationToken) -> None:
        """Remove ``token`` from this group if it is present."""

        with self._lock:
            try:
                self._tokens.remove(token)
            except ValueError:
                # already released
                pass

    def cancel_all(self) -> None:
        """Cancel all tokens in this group."""
        with self._lock:
            self._cancelled = True
            for token in self._tokens:
                token.cancel()

    def is_any_cancelled(self) -> bool:
        with self._lock:
            return any(token.is_cancelled() for token in self._tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


__all__ = ["ActionCancelled", "CancellationToken", "CancellationTokenGroup"]
