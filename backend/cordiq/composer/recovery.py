"""Recovery of unsynced local edits when a composer opens."""

import logging

from pydantic import ValidationError

from cordiq.composer.remote import RemoteDraftStore
from cordiq.composer.storage import LocalDraftStorage, local_draft_key
from cordiq.core.result import Result
from cordiq.models.email_draft import DraftContent, DraftSnapshot, EmailDraftResponse

logger = logging.getLogger(__name__)

RECOVERY_PROMPT = "Unsaved changes detected. Would you like to restore your draft?"
DISCARD_FETCH_FAILED_MESSAGE = "Could not load the saved draft from the server"


class DraftRecoveryResolver:
    """Decides whether a local snapshot is newer than the server's draft.

    ``check()`` compares the snapshot's capture time against the remote
    draft's ``updated_at`` and sets ``recovery_prompt`` when local edits may
    not have reached the server. The editor then calls ``recover()`` or
    ``discard()``; either one settles ``recovered_draft`` and clears the
    prompt.
    """

    def __init__(
        self,
        user_id: str,
        contact_id: str,
        local_storage: LocalDraftStorage,
        remote_store: RemoteDraftStore,
    ) -> None:
        self.user_id = user_id
        self.contact_id = contact_id
        self._local_storage = local_storage
        self._remote_store = remote_store
        self._storage_key = local_draft_key(user_id, contact_id)

        self.recovery_prompt: str | None = None
        self.local_snapshot: DraftSnapshot | None = None
        self.recovered_draft: DraftContent | None = None
        self.error: str | None = None

        self._checked = False
        self._closed = False
        self._remote_fetched = False
        self._remote_draft: EmailDraftResponse | None = None

    @property
    def checked(self) -> bool:
        return self._checked

    def _read_snapshot(self) -> Result[DraftSnapshot]:
        try:
            raw = self._local_storage.get(self._storage_key)
        except Exception as e:
            return Result.failure(e)
        if raw is None:
            return Result.success(None)
        try:
            return Result.success(DraftSnapshot.model_validate_json(raw))
        except ValidationError as e:
            # Unparseable or missing its timestamp; nothing worth keeping
            self._remove_snapshot()
            return Result.failure(e)

    def _remove_snapshot(self) -> None:
        try:
            self._local_storage.remove(self._storage_key)
        except Exception as e:
            logger.warning("Failed to remove local draft %s: %s", self._storage_key, e)

    async def _fetch_remote(self) -> Result[EmailDraftResponse]:
        try:
            draft = await self._remote_store.get_draft_by_contact(self.contact_id)
        except Exception as e:
            return Result.failure(e)
        self._remote_fetched = True
        self._remote_draft = draft
        return Result.success(draft)

    async def check(self) -> bool:
        """Run the recovery comparison once; returns whether a prompt is pending.

        Later calls return the first outcome without touching storage or
        the backend again.
        """
        if self._checked:
            return self.recovery_prompt is not None
        self._checked = True

        snapshot_result = self._read_snapshot()
        if not snapshot_result.ok:
            logger.info(
                "Ignoring unreadable local draft: %s",
                snapshot_result.error_message,
                extra={"user_id": self.user_id, "contact_id": self.contact_id},
            )
            return False
        snapshot = snapshot_result.value
        if snapshot is None:
            return False

        remote_result = await self._fetch_remote()
        if self._closed:
            return False

        if not remote_result.ok:
            # Losing typed text is worse than an unneeded prompt
            logger.warning(
                "Draft fetch failed during recovery check, offering local copy: %s",
                remote_result.error_message,
                extra={"user_id": self.user_id, "contact_id": self.contact_id},
            )
            prompt = True
        elif remote_result.value is None:
            prompt = True
        else:
            prompt = snapshot.captured_at_millis > remote_result.value.updated_at_millis

        if prompt:
            self.local_snapshot = snapshot
            self.recovery_prompt = RECOVERY_PROMPT
        return prompt

    def recover(self) -> DraftContent | None:
        """Adopt the local snapshot as the working draft.

        The snapshot stays in storage and nothing is sent to the backend;
        the next auto-save takes care of both.
        """
        if self.local_snapshot is None:
            return None
        self.recovered_draft = self.local_snapshot.content()
        self.recovery_prompt = None
        return self.recovered_draft

    async def discard(self) -> DraftContent:
        """Drop the local snapshot and fall back to the server's draft."""
        self._remove_snapshot()
        self.local_snapshot = None

        if self._remote_fetched:
            remote_result: Result[EmailDraftResponse] = Result.success(self._remote_draft)
        else:
            remote_result = await self._fetch_remote()

        if self._closed:
            return DraftContent()

        if remote_result.ok:
            draft = remote_result.value
            self.recovered_draft = draft.content() if draft is not None else DraftContent()
            self.error = None
        else:
            logger.error(
                "Draft fetch failed while discarding local copy: %s",
                remote_result.error_message,
                extra={"user_id": self.user_id, "contact_id": self.contact_id},
            )
            self.recovered_draft = DraftContent()
            self.error = DISCARD_FETCH_FAILED_MESSAGE

        self.recovery_prompt = None
        return self.recovered_draft

    def close(self) -> None:
        """Ignore the results of operations still in flight."""
        self._closed = True
