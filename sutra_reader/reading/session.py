from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .auth import AuthFlowController
from .captcha import HumanVerificationGate
from .catalog import ContentCatalog, visible_paragraph_keys
from .config import ReaderConfig
from .indexing import Indexer, NoopIndexer, WhooshIndexer
from .models import Annotation, FilteredSutra
from .remote import BackendClient, InMemoryAuthBackend, RemoteSync
from .repository import InMemoryRowStore, RowStore, SqlAlchemyRowStore
from .storage import FileKeyValueStore, LocalPersistence, StatePaths
from .store import ReadingDataStore

logger = logging.getLogger(__name__)

READ_CONFIRMATION_WORD = "over"


class ReaderSession:
    """
    One reader's view of the application: auth flow, reading data and the
    catalog wired together. Identity changes reported by the auth controller
    switch the reading store to the matching storage namespace.
    """

    def __init__(
        self,
        backend: BackendClient,
        persistence: LocalPersistence,
        catalog: ContentCatalog,
        gate: Optional[HumanVerificationGate] = None,
        locale: str = "zh",
        password_update_delay: float = 1.5,
        site_url: Optional[str] = None,
    ):
        self.backend = backend
        self.catalog = catalog
        self.gate = gate or HumanVerificationGate()
        self.store = ReadingDataStore(persistence, RemoteSync(backend.rows))
        self.auth = AuthFlowController(
            backend.auth,
            gate=self.gate,
            locale=locale,
            password_update_delay=password_update_delay,
            site_url=site_url,
            on_identity_change=self.store.set_identity,
        )
        self.search = ""
        self.unread_only = False
        self.started = False

    async def start(self, url: Optional[str] = None) -> Optional[str]:
        """
        Initialize the challenge, restore any backend session and consume
        auth tokens from `url`. Returns the cleaned URL when one was given.
        """
        self.gate.initialize()
        await self.auth.start()
        self.started = True
        if url:
            return await self.auth.handle_url(url)
        return None

    def close(self) -> None:
        self.auth.close()

    def visible_catalog(self, search: Optional[str] = None, unread_only: Optional[bool] = None) -> List[FilteredSutra]:
        return self.catalog.filter(
            self.search if search is None else search,
            self.unread_only if unread_only is None else unread_only,
            self.store.progress,
        )

    async def mark_visible_read(self, search: Optional[str] = None, unread_only: Optional[bool] = None) -> List[str]:
        keys = visible_paragraph_keys(self.visible_catalog(search, unread_only))
        return await self.store.mark_all_read(keys)

    async def confirm_read(self, key: str, typed: str) -> bool:
        """Marks a paragraph read once the reader types the confirmation word."""
        if (typed or "").strip().lower() != READ_CONFIRMATION_WORD:
            return False
        await self.store.mark_read(key)
        return True

    async def annotate(self, key: str, text: str) -> Optional[Annotation]:
        if not self.auth.authenticated_and_confirmed:
            return None
        return await self.store.add_annotation(key, text)


def build_row_store(config: ReaderConfig) -> RowStore:
    if config.remote_database_url:
        return SqlAlchemyRowStore(config.remote_database_url)
    return InMemoryRowStore()


def build_indexer(config: ReaderConfig) -> Indexer:
    if config.whoosh_index_dir:
        return WhooshIndexer(Path(config.whoosh_index_dir))
    return NoopIndexer()


def build_session(config: ReaderConfig, backend: Optional[BackendClient] = None) -> ReaderSession:
    """
    Create all required components from `config`. Without an explicit
    backend the in-process auth provider is used together with the
    configured row store.
    """
    if backend is None:
        backend = BackendClient(
            auth=InMemoryAuthBackend(
                require_confirmation=config.require_email_confirmation,
                site_url=config.site_url or "http://localhost:3000",
            ),
            rows=build_row_store(config),
        )
    store = FileKeyValueStore(StatePaths(Path(config.state_dir))) if config.state_dir else None
    catalog = ContentCatalog(
        batch_size=config.catalog_batch_size,
        load_delay=config.load_more_delay,
        indexer=build_indexer(config),
    )
    logger.info(
        "Reader session: state=%s remote=%s index=%s",
        config.state_dir or "disabled",
        "sql" if config.remote_database_url else "memory",
        config.whoosh_index_dir or "none",
    )
    return ReaderSession(
        backend=backend,
        persistence=LocalPersistence(store),
        catalog=catalog,
        locale=config.locale,
        password_update_delay=config.password_update_delay,
        site_url=config.site_url,
    )
