from __future__ import annotations

import hashlib
import logging
import secrets
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlencode

from .errors import BackendError
from .models import AuthEvent, AuthResult, AuthSession, Identity, utcnow_iso
from .repository import InMemoryRowStore, RowStore

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]
Row = Dict[str, Any]

MIN_PASSWORD_LENGTH = 6


class AuthBackend:
    """
    Identity/session provider boundary. All calls are coroutines; rejected
    requests raise `BackendError`. State changes are announced to listeners
    registered through `on_auth_state_change`.
    """

    async def sign_up(self, email: str, password: str, redirect_to: Optional[str] = None) -> AuthResult:
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        raise NotImplementedError

    async def get_session(self) -> Optional[AuthSession]:
        raise NotImplementedError

    async def get_user(self) -> Optional[Identity]:
        raise NotImplementedError

    async def set_session(self, access_token: str, refresh_token: str) -> AuthSession:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        raise NotImplementedError

    async def update_user(self, password: Optional[str] = None) -> Identity:
        raise NotImplementedError

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        raise NotImplementedError


@dataclass
class BackendClient:
    auth: AuthBackend
    rows: RowStore


@dataclass
class _Account:
    identity: Identity
    password_hash: str
    salt: str


@dataclass
class _IssuedTokens:
    user_id: str
    refresh_token: str
    kind: str


@dataclass
class SentEmail:
    to: str
    kind: str
    link: str
    sent_at: str = field(default_factory=utcnow_iso)


class InMemoryAuthBackend(AuthBackend):
    """
    Self-contained auth provider for local runs and tests. It mimics the
    hosted provider closely enough to drive every controller path:
    optional email confirmation, links carried in URL fragments, and
    change notifications after every session mutation.

    Emails are not delivered; they are appended to `outbox` so callers can
    follow the links.
    """

    def __init__(
        self,
        require_confirmation: bool = True,
        reject_unconfirmed_sign_in: bool = False,
        site_url: str = "http://localhost:3000",
    ):
        self.require_confirmation = require_confirmation
        self.reject_unconfirmed_sign_in = reject_unconfirmed_sign_in
        self.site_url = site_url
        self.accounts: Dict[str, _Account] = {}
        self.outbox: List[SentEmail] = []
        self._tokens: Dict[str, _IssuedTokens] = {}
        self._current: Optional[AuthSession] = None
        self._listeners: Dict[int, AuthListener] = {}
        self._next_listener = 0

    # region helpers
    def _hash(self, password: str, salt: str) -> str:
        return hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()

    def _find(self, email: str) -> Optional[_Account]:
        return self.accounts.get(email.strip().lower())

    def _find_by_id(self, user_id: str) -> Optional[_Account]:
        for account in self.accounts.values():
            if account.identity.id == user_id:
                return account
        return None

    def _check_password(self, password: str) -> None:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise BackendError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters", status=422)

    def _issue(self, account: _Account, kind: str = "session") -> AuthSession:
        access_token = secrets.token_urlsafe(24)
        refresh_token = secrets.token_urlsafe(24)
        self._tokens[access_token] = _IssuedTokens(account.identity.id, refresh_token, kind)
        return AuthSession(access_token, refresh_token, deepcopy(account.identity))

    def _link(self, tokens: AuthSession, kind: str, redirect_to: Optional[str]) -> str:
        fragment = urlencode(
            {"access_token": tokens.access_token, "refresh_token": tokens.refresh_token, "type": kind}
        )
        return f"{redirect_to or self.site_url}#{fragment}"

    def _activate(self, session: Optional[AuthSession], event: AuthEvent) -> None:
        self._current = session
        self._notify(event)

    def _notify(self, event: AuthEvent) -> None:
        snapshot = deepcopy(self._current)
        for listener in list(self._listeners.values()):
            try:
                listener(event, snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Auth listener failed for %s", event.value)

    # endregion

    # region provider operations
    async def sign_up(self, email: str, password: str, redirect_to: Optional[str] = None) -> AuthResult:
        email = email.strip().lower()
        if not email or "@" not in email:
            raise BackendError("Unable to validate email address: invalid format")
        if self._find(email):
            raise BackendError("User already registered", status=422)
        self._check_password(password)

        salt = secrets.token_hex(8)
        identity = Identity(id=secrets.token_hex(16), email=email)
        account = _Account(identity=identity, password_hash=self._hash(password, salt), salt=salt)
        self.accounts[email] = account

        if self.require_confirmation:
            link_tokens = self._issue(account, kind="signup")
            self.outbox.append(SentEmail(email, "signup", self._link(link_tokens, "signup", redirect_to)))
            return AuthResult(user=deepcopy(identity), session=None)

        identity.email_confirmed_at = utcnow_iso()
        session = self._issue(account)
        self._activate(session, AuthEvent.SIGNED_IN)
        return AuthResult(user=deepcopy(identity), session=deepcopy(session))

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        account = self._find(email)
        if not account or account.password_hash != self._hash(password, account.salt):
            raise BackendError("Invalid login credentials")
        if self.reject_unconfirmed_sign_in and not account.identity.is_confirmed:
            raise BackendError("Email not confirmed")
        session = self._issue(account)
        self._activate(session, AuthEvent.SIGNED_IN)
        return AuthResult(user=deepcopy(account.identity), session=deepcopy(session))

    async def get_session(self) -> Optional[AuthSession]:
        return deepcopy(self._current)

    async def get_user(self) -> Optional[Identity]:
        if not self._current:
            return None
        account = self._find_by_id(self._current.user.id)
        return deepcopy(account.identity) if account else None

    async def set_session(self, access_token: str, refresh_token: str) -> AuthSession:
        issued = self._tokens.get(access_token)
        if not issued or issued.refresh_token != refresh_token:
            raise BackendError("Invalid Refresh Token", status=401)
        account = self._find_by_id(issued.user_id)
        if not account:
            raise BackendError("User not found", status=404)
        if issued.kind == "signup" and not account.identity.is_confirmed:
            account.identity.email_confirmed_at = utcnow_iso()
        session = AuthSession(access_token, refresh_token, deepcopy(account.identity))
        event = AuthEvent.PASSWORD_RECOVERY if issued.kind == "recovery" else AuthEvent.SIGNED_IN
        self._activate(session, event)
        return deepcopy(session)

    async def sign_out(self) -> None:
        if self._current:
            self._tokens.pop(self._current.access_token, None)
        self._activate(None, AuthEvent.SIGNED_OUT)

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        if not email or "@" not in email:
            raise BackendError("Unable to validate email address: invalid format")
        account = self._find(email)
        if not account:
            # Unknown addresses are accepted silently.
            return
        tokens = self._issue(account, kind="recovery")
        self.outbox.append(SentEmail(account.identity.email, "recovery", self._link(tokens, "recovery", redirect_to)))

    async def update_user(self, password: Optional[str] = None) -> Identity:
        if not self._current:
            raise BackendError("Auth session missing!", status=401)
        account = self._find_by_id(self._current.user.id)
        if not account:
            raise BackendError("User not found", status=404)
        if password is not None:
            self._check_password(password)
            if self._hash(password, account.salt) == account.password_hash:
                raise BackendError("New password should be different from the old password.", status=422)
            account.password_hash = self._hash(password, account.salt)
        self._current.user = deepcopy(account.identity)
        self._notify(AuthEvent.USER_UPDATED)
        return deepcopy(account.identity)

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        listener_id = self._next_listener
        self._next_listener += 1
        self._listeners[listener_id] = callback

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    # endregion

    # region out-of-band events
    def confirm_email(self, email: str) -> None:
        """
        Marks an address as confirmed the way clicking the link in another
        browser would: the provider knows, but no notification reaches this
        client until it asks.
        """
        account = self._find(email)
        if not account:
            raise BackendError("User not found", status=404)
        if not account.identity.is_confirmed:
            account.identity.email_confirmed_at = utcnow_iso()

    def last_link(self, email: str, kind: Optional[str] = None) -> Optional[str]:
        email = email.strip().lower()
        for sent in reversed(self.outbox):
            if sent.to == email and (kind is None or sent.kind == kind):
                return sent.link
        return None

    # endregion


class RemoteSync:
    """
    Best-effort mirror of local mutations into the row store. Every failure
    is logged and dropped; callers only learn whether the write landed.
    """

    def __init__(self, rows: Optional[RowStore] = None):
        self.rows = rows if rows is not None else InMemoryRowStore()

    async def upsert(self, table: str, data: Union[Row, List[Row]]) -> bool:
        rows = [data] if isinstance(data, dict) else list(data)
        if not rows:
            return True
        try:
            await self.rows.upsert(table, rows)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Remote upsert into %s dropped: %s", table, exc)
            return False
        return True
