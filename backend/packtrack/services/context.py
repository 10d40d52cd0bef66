# Overview: Explicit caller context threaded through every core operation.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OperationContext:
    """
    Workspace and actor identity for one core operation.

    Replaces any process-wide "active workspace" variable: every service
    function takes a context, so concurrent sessions for different
    workspaces or operators never share hidden state.
    """
    workspace_id: int
    actor_id: int | None = None

    def __post_init__(self):
        if not isinstance(self.workspace_id, int) or isinstance(self.workspace_id, bool) or self.workspace_id <= 0:
            raise ValueError("workspace_id must be a positive integer")
        if self.actor_id is not None and (
            not isinstance(self.actor_id, int) or isinstance(self.actor_id, bool)
        ):
            raise ValueError("actor_id must be an integer or None")
