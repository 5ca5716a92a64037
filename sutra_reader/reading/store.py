from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .models import GUEST_USER, Annotation, Identity, random_id, utcnow_iso
from .remote import RemoteSync
from .repository import ANNOTATIONS_TABLE, PROGRESS_TABLE
from .storage import LocalPersistence, annotations_key, namespace_for, progress_key

logger = logging.getLogger(__name__)


class ReadingDataStore:
    """
    Per-identity reading progress and annotations.

    State is hydrated from local persistence whenever the identity namespace
    changes. Every mutation is written back locally inside the same call via
    `_commit`, before any remote mirroring is awaited. Remote writes only
    happen while an identity is active and never roll local state back.
    """

    def __init__(
        self,
        persistence: LocalPersistence,
        remote: Optional[RemoteSync] = None,
        clock: Optional[Callable[[], str]] = None,
        id_factory: Callable[[], str] = random_id,
    ):
        self.persistence = persistence
        self.remote = remote
        self._clock = clock or utcnow_iso
        self._id_factory = id_factory
        self.user: Optional[Identity] = None
        self.progress: Dict[str, bool] = {}
        self.annotations: List[Annotation] = []
        self._namespace: Optional[str] = None
        self._pending_syncs = 0
        self.set_identity(None)

    @property
    def namespace(self) -> str:
        return namespace_for(self.user)

    @property
    def syncing(self) -> bool:
        return self._pending_syncs > 0

    def set_identity(self, user: Optional[Identity]) -> None:
        self.user = user
        namespace = namespace_for(user)
        if namespace == self._namespace:
            return
        self._namespace = namespace
        self.progress = self._coerce_progress(self.persistence.load(progress_key(user), {}))
        self.annotations = self._coerce_annotations(self.persistence.load(annotations_key(user), []))
        logger.debug(
            "Hydrated %s: %d read paragraphs, %d annotations",
            namespace,
            len(self.progress),
            len(self.annotations),
        )

    # region persistence
    def _coerce_progress(self, raw: Any) -> Dict[str, bool]:
        if not isinstance(raw, dict):
            return {}
        return {str(key): bool(value) for key, value in raw.items()}

    def _coerce_annotations(self, raw: Any) -> List[Annotation]:
        if not isinstance(raw, list):
            return []
        return [Annotation.from_dict(item) for item in raw if isinstance(item, dict)]

    def _commit(
        self,
        progress: Optional[Dict[str, bool]] = None,
        annotations: Optional[List[Annotation]] = None,
    ) -> None:
        if progress is not None:
            self.progress = progress
            self.persistence.save(progress_key(self.user), self.progress)
        if annotations is not None:
            self.annotations = annotations
            self.persistence.save(annotations_key(self.user), [a.to_dict() for a in self.annotations])

    async def _mirror(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> None:
        if self.remote is None or self.user is None:
            return
        self._pending_syncs += 1
        try:
            await self.remote.upsert(table, rows)
        finally:
            self._pending_syncs -= 1

    # endregion

    # region mutations
    def _progress_row(self, key: str, user: Identity) -> Dict[str, Any]:
        return {"id": key, "user_id": user.id, "read": True, "updated_at": self._clock()}

    async def mark_read(self, key: str) -> None:
        self._commit(progress={**self.progress, key: True})
        if self.user is not None:
            await self._mirror(PROGRESS_TABLE, self._progress_row(key, self.user))

    async def mark_all_read(self, keys: Iterable[str]) -> List[str]:
        unread = [key for key in dict.fromkeys(keys) if not self.progress.get(key)]
        if not unread:
            return []
        updated = dict(self.progress)
        updated.update({key: True for key in unread})
        self._commit(progress=updated)
        if self.user is not None:
            await self._mirror(PROGRESS_TABLE, [self._progress_row(key, self.user) for key in unread])
        return unread

    async def add_annotation(self, key: str, text: str) -> Optional[Annotation]:
        content = (text or "").strip()
        if not content:
            return None
        annotation = Annotation(
            id=self._id_factory(),
            paragraph_key=key,
            user_id=self.user.id if self.user else GUEST_USER,
            content=content,
            created_at=self._clock(),
        )
        self._commit(annotations=[*self.annotations, annotation])
        if self.user is not None:
            await self._mirror(ANNOTATIONS_TABLE, annotation.to_row())
        return annotation

    # endregion

    # region queries
    def is_read(self, key: str) -> bool:
        return bool(self.progress.get(key))

    def annotations_for(self, key: str) -> List[Annotation]:
        return [a for a in self.annotations if a.paragraph_key == key]

    # endregion

    # region snapshot
    def export_snapshot(self) -> str:
        return json.dumps(
            {
                "progress": dict(self.progress),
                "annotations": [a.to_dict() for a in self.annotations],
            },
            ensure_ascii=False,
            indent=2,
        )

    def import_snapshot(self, doc: Union[str, bytes, Dict[str, Any]]) -> bool:
        """
        Replaces progress and annotations wholesale. Malformed documents are
        ignored and leave the current state untouched.
        """
        if isinstance(doc, (str, bytes)):
            try:
                doc = json.loads(doc)
            except ValueError:
                logger.debug("Ignoring malformed snapshot")
                return False
        if not isinstance(doc, dict):
            logger.debug("Ignoring snapshot of type %s", type(doc).__name__)
            return False
        self._commit(
            progress=self._coerce_progress(doc.get("progress") or {}),
            annotations=self._coerce_annotations(doc.get("annotations") or []),
        )
        return True

    # endregion
