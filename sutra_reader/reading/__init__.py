"""
Reading subsystem exports.
"""

from .auth import AuthFlowController
from .captcha import HumanVerificationGate, honeypot_triggered
from .catalog import ContentCatalog, generate_demo_sutras, visible_paragraph_keys
from .config import ReaderConfig
from .errors import BackendError
from .indexing import Indexer, NoopIndexer, WhooshIndexer
from .models import (
    GUEST_USER,
    Annotation,
    AuthEvent,
    AuthResult,
    AuthSession,
    AuthState,
    AuthView,
    FilteredSutra,
    Identity,
    Sutra,
    paragraph_key,
    split_paragraph_key,
)
from .remote import AuthBackend, BackendClient, InMemoryAuthBackend, RemoteSync
from .repository import InMemoryRowStore, RowStore, SqlAlchemyRowStore
from .session import ReaderSession, build_session
from .storage import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    LocalPersistence,
    StatePaths,
    annotations_key,
    progress_key,
)
from .store import ReadingDataStore

__all__ = [
    "GUEST_USER",
    "Annotation",
    "AuthBackend",
    "AuthEvent",
    "AuthFlowController",
    "AuthResult",
    "AuthSession",
    "AuthState",
    "AuthView",
    "BackendClient",
    "BackendError",
    "ContentCatalog",
    "FileKeyValueStore",
    "FilteredSutra",
    "HumanVerificationGate",
    "Identity",
    "InMemoryAuthBackend",
    "InMemoryKeyValueStore",
    "InMemoryRowStore",
    "Indexer",
    "KeyValueStore",
    "LocalPersistence",
    "NoopIndexer",
    "ReaderConfig",
    "ReaderSession",
    "ReadingDataStore",
    "RemoteSync",
    "RowStore",
    "SqlAlchemyRowStore",
    "StatePaths",
    "Sutra",
    "WhooshIndexer",
    "annotations_key",
    "build_session",
    "generate_demo_sutras",
    "honeypot_triggered",
    "paragraph_key",
    "progress_key",
    "split_paragraph_key",
    "visible_paragraph_keys",
]
