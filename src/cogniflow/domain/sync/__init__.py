# Domain Sync Package
from .models import (
    Change,
    ChangeKind,
    Conflict,
    Entity,
    EntityKind,
    MergeReport,
    ResolutionChoice,
    Section,
    Side,
    UserResolution,
)
from .ports import RemoteSnapshotSource, SnapshotStorage

__all__ = [
    "Change",
    "ChangeKind",
    "Conflict",
    "Entity",
    "EntityKind",
    "MergeReport",
    "ResolutionChoice",
    "Section",
    "Side",
    "UserResolution",
    "RemoteSnapshotSource",
    "SnapshotStorage",
]
