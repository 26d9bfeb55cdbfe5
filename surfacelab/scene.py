from __future__ import annotations

import logging
from typing import List, Optional

from surfacelab import config
from surfacelab.entity import SurfaceEntity
from surfacelab.group import PatchGroup
from surfacelab.history import AddGroup, DeleteGroup, TransactionLog

logger = logging.getLogger(__name__)


class Scene:
    """Root data model: owns all patch groups and the transaction log."""

    def __init__(self, file_path: Optional[str] = None) -> None:
        self.groups: List[PatchGroup] = []
        self.log = TransactionLog()
        self.file_path = file_path

    def add_group(self, name: Optional[str] = None) -> PatchGroup:
        group = PatchGroup(name=name or f"{config.DEFAULT_GROUP_NAME} {len(self.groups) + 1}")
        self.log.execute(AddGroup(self, group))
        return group

    def remove_group(self, group: PatchGroup) -> None:
        self.log.execute(DeleteGroup(self, group))

    # --- Used by commands and loaders ---

    def attach_group(self, group: PatchGroup, index: Optional[int] = None) -> None:
        if any(g is group for g in self.groups):
            return
        if index is None:
            self.groups.append(group)
        else:
            self.groups.insert(index, group)

    def detach_group(self, group: PatchGroup) -> Optional[int]:
        """Remove a group; returns its former position, or None if absent."""
        for i, g in enumerate(self.groups):
            if g is group:
                del self.groups[i]
                return i
        return None

    # --- Queries ---

    def find_group(self, entity: SurfaceEntity) -> Optional[PatchGroup]:
        return next((g for g in self.groups if entity in g), None)

    def all_surfaces(self) -> List[SurfaceEntity]:
        return [s for g in self.groups for s in g.surfaces]
