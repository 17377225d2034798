"""Client-side draft persistence: two-tier auto-save and recovery."""

from cordiq.composer.autosave import AutoSaveState, DraftAutoSaveCoordinator, SaveStatus
from cordiq.composer.recovery import RECOVERY_PROMPT, DraftRecoveryResolver
from cordiq.composer.remote import HttpRemoteDraftStore, RemoteDraftStore, RemoteDraftStoreError
from cordiq.composer.storage import (
    FileDraftStorage,
    InMemoryDraftStorage,
    LocalDraftStorage,
    local_draft_key,
)

__all__ = [
    "AutoSaveState",
    "DraftAutoSaveCoordinator",
    "DraftRecoveryResolver",
    "FileDraftStorage",
    "HttpRemoteDraftStore",
    "InMemoryDraftStorage",
    "LocalDraftStorage",
    "RECOVERY_PROMPT",
    "RemoteDraftStore",
    "RemoteDraftStoreError",
    "SaveStatus",
    "local_draft_key",
]
