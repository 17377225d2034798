"""Two-tier auto-save for the email composer.

Every edit re-arms two independent debounced saves:

- local: a timestamped snapshot written to device storage after 2 s of quiet;
  cheap, survives crashes and reloads, never reports failure;
- remote: an upsert to the drafts API after 10 s of quiet; durable across
  devices, failures show up in ``state.error`` until the next successful sync.

The observed status is whichever tier transitioned last.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum

from cordiq.composer.debounce import Debouncer
from cordiq.composer.remote import RemoteDraftStore
from cordiq.composer.storage import LocalDraftStorage, local_draft_key
from cordiq.core.config import settings
from cordiq.core.result import Result
from cordiq.models.email_draft import AutoSaveDraftInput, DraftContent, DraftSnapshot

logger = logging.getLogger(__name__)

SYNC_FAILED_MESSAGE = "Failed to sync to server"


class SaveStatus(str, Enum):
    """Auto-save progress as shown in the composer."""

    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


@dataclass(frozen=True)
class AutoSaveState:
    """Snapshot of auto-save progress."""

    status: SaveStatus = SaveStatus.IDLE
    last_saved_at: datetime | None = None
    error: str | None = None


StateListener = Callable[[AutoSaveState], None]


class DraftAutoSaveCoordinator:
    """Debounced local + remote persistence of one draft.

    One coordinator per open composer, i.e. per ``(user_id, contact_id)``.
    Must be driven from inside a running event loop.
    """

    def __init__(
        self,
        user_id: str,
        contact_id: str,
        local_storage: LocalDraftStorage,
        remote_store: RemoteDraftStore,
        local_debounce: float | None = None,
        remote_debounce: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            user_id: Owner of the draft.
            contact_id: Contact the draft is addressed to.
            local_storage: Device-local snapshot store.
            remote_store: Drafts API.
            local_debounce: Quiet period before a local save, in seconds.
            remote_debounce: Quiet period before a remote sync, in seconds.
            clock: Wall clock in epoch seconds.
        """
        self.user_id = user_id
        self.contact_id = contact_id
        self._local_storage = local_storage
        self._remote_store = remote_store
        self._clock = clock
        self._storage_key = local_draft_key(user_id, contact_id)

        self._content: DraftContent | None = None
        self._state = AutoSaveState()
        self._listeners: list[StateListener] = []
        self._closed = False

        self._local_debouncer = Debouncer(
            settings.DRAFT_LOCAL_SAVE_DEBOUNCE_SECONDS if local_debounce is None else local_debounce,
            self._run_local_save,
            name="local-save",
        )
        self._remote_debouncer = Debouncer(
            settings.DRAFT_REMOTE_SYNC_DEBOUNCE_SECONDS if remote_debounce is None else remote_debounce,
            self._run_remote_sync,
            name="remote-sync",
        )

    @property
    def state(self) -> AutoSaveState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` on every state transition; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)  # type: ignore[arg-type]
        for listener in list(self._listeners):
            listener(self._state)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def update(self, content: DraftContent) -> None:
        """Record an edit and re-arm both saves.

        An empty draft (no subject, no body) schedules nothing, so opening the
        composer never persists an empty draft. Clearing a draft drops the
        saves still pending for the text that was cleared.
        """
        if self._closed:
            logger.debug("Ignoring update on closed auto-save for contact %s", self.contact_id)
            return
        if content.is_empty():
            if self._content is not None:
                self._local_debouncer.cancel()
                self._remote_debouncer.cancel()
                self._content = None
            return
        self._content = content
        self._local_debouncer.trigger()
        self._remote_debouncer.trigger()

    def close(self) -> None:
        """Cancel pending saves without flushing them.

        Syncs already in flight finish, but their results no longer change
        the state.
        """
        self._closed = True
        self._local_debouncer.cancel()
        self._remote_debouncer.cancel()
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Wait for an in-flight remote sync to settle."""
        await self._remote_debouncer.wait_idle()

    def save_local(self, content: DraftContent) -> Result[DraftSnapshot]:
        """Write a timestamped snapshot of ``content`` to local storage."""
        try:
            snapshot = DraftSnapshot(
                **content.model_dump(),
                captured_at_millis=int(self._clock() * 1000),
            )
            self._local_storage.set(
                self._storage_key,
                snapshot.model_dump_json(by_alias=True, exclude_none=True),
            )
        except Exception as e:
            return Result.failure(e)
        return Result.success(snapshot)

    def _run_local_save(self) -> None:
        if self._closed or self._content is None:
            return
        previous_status = self._state.status
        self._transition(status=SaveStatus.SAVING)

        result = self.save_local(self._content)
        if result.ok:
            self._transition(status=SaveStatus.SAVED, last_saved_at=self._now(), error=None)
            return

        # Usually a storage quota problem; the remote tier still covers the draft.
        logger.warning(
            "Local draft save failed: %s",
            result.error_message,
            extra={"user_id": self.user_id, "contact_id": self.contact_id},
        )
        self._transition(status=previous_status)

    async def sync_remote(self, content: DraftContent) -> Result[object]:
        """Push ``content`` to the drafts API."""
        try:
            draft_input = AutoSaveDraftInput(
                contact_id=self.contact_id,
                last_synced_at=self._now(),
                **content.model_dump(),
            )
            saved = await self._remote_store.auto_save_draft(draft_input)
        except Exception as e:
            return Result.failure(e)
        return Result.success(saved)

    async def _run_remote_sync(self) -> None:
        if self._closed or self._content is None:
            return
        self._transition(status=SaveStatus.SYNCING)

        result = await self.sync_remote(self._content)
        if self._closed:
            return
        if result.ok:
            self._transition(status=SaveStatus.SYNCED, last_saved_at=self._now(), error=None)
            return

        logger.error(
            "Draft sync failed: %s",
            result.error_message,
            extra={"user_id": self.user_id, "contact_id": self.contact_id},
        )
        self._transition(status=SaveStatus.ERROR, error=str(result.error) or SYNC_FAILED_MESSAGE)
