"""Per-workspace orchestrator registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from promptsync.services.orchestrator_service import SyncOrchestrator

logger = logging.getLogger(__name__)


class WorkspaceSyncRegistry:
    """Owns one SyncOrchestrator per workspace id.

    Callers hold a registry instance explicitly; there is no module-level
    default, so two registries never share orchestrators.
    """

    def __init__(self) -> None:
        self._orchestrators: dict[str, SyncOrchestrator] = {}

    def __contains__(self, workspace_id: object) -> bool:
        return workspace_id in self._orchestrators

    def __len__(self) -> int:
        return len(self._orchestrators)

    def get(self, workspace_id: str) -> SyncOrchestrator | None:
        return self._orchestrators.get(workspace_id)

    def get_or_create(
        self,
        workspace_id: str,
        factory: Callable[[], SyncOrchestrator],
    ) -> SyncOrchestrator:
        """Return the workspace's orchestrator, building it with *factory* on first use."""
        orchestrator = self._orchestrators.get(workspace_id)
        if orchestrator is None:
            orchestrator = factory()
            self._orchestrators[workspace_id] = orchestrator
            logger.debug("Created sync orchestrator for workspace %s", workspace_id)
        return orchestrator

    async def dispose(self, workspace_id: str) -> bool:
        """Close and forget a workspace's orchestrator. Returns True if one existed."""
        orchestrator = self._orchestrators.pop(workspace_id, None)
        if orchestrator is None:
            return False
        orchestrator.cancel()
        await orchestrator.aclose()
        return True

    async def dispose_all(self) -> None:
        for workspace_id in list(self._orchestrators):
            await self.dispose(workspace_id)
