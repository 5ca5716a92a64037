from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit, urlunsplit

from .captcha import HumanVerificationGate, honeypot_triggered
from .messages import DEFAULT_LOCALE, get_message
from .models import AuthEvent, AuthSession, AuthState, AuthView, Identity
from .remote import AuthBackend

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]


def _first(params: Dict[str, List[str]], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


class AuthFlowController:
    """
    Drives sign-up, sign-in, email confirmation, password recovery and
    sign-out against an `AuthBackend`.

    Identity is owned by the backend: `user` and `session` are replaced on
    every auth notification, and local flags (`confirmation_needed`,
    `recovery_mode`) only describe what the UI should show on top of it.
    A notification carrying a confirmed user always clears
    `confirmation_needed`, whatever path set it.

    Each action clears `message` and `error` on entry and leaves at most one
    of them set. Backend failures become `error`; nothing is raised.
    """

    def __init__(
        self,
        backend: AuthBackend,
        gate: Optional[HumanVerificationGate] = None,
        locale: str = DEFAULT_LOCALE,
        password_update_delay: float = 1.5,
        site_url: Optional[str] = None,
        on_identity_change: Optional[IdentityListener] = None,
    ):
        self.backend = backend
        self.gate = gate or HumanVerificationGate()
        self.locale = locale
        self.password_update_delay = password_update_delay
        self.site_url = site_url
        self.on_identity_change = on_identity_change

        self.session: Optional[AuthSession] = None
        self.user: Optional[Identity] = None
        self.view = AuthView.LOGIN
        self.confirmation_needed = False
        self.recovery_mode = False
        self.reset_email_sent = False
        self.loading = False
        self.checking_email = False
        self.message: Optional[str] = None
        self.error: Optional[str] = None

        self._fragment_consumed = False
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._recovery_exit: Optional[asyncio.TimerHandle] = None

    # region derived state
    @property
    def state(self) -> AuthState:
        if self.recovery_mode:
            return AuthState.RECOVERY
        if self.confirmation_needed:
            return AuthState.AWAITING_CONFIRMATION
        if self.user is not None:
            return AuthState.AUTHENTICATED
        return AuthState.ANONYMOUS

    @property
    def authenticated_and_confirmed(self) -> bool:
        return self.user is not None and not self.confirmation_needed and not self.recovery_mode

    @property
    def generation(self) -> int:
        return self._generation

    # endregion

    # region lifecycle
    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.backend.on_auth_state_change(self._on_auth_state_change)
        generation = self._generation
        try:
            session = await self.backend.get_session()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not restore auth session: %s", exc)
            return
        if generation != self._generation:
            logger.debug("Auth notification arrived first; ignoring restored session")
            return
        self._apply_session(session)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._recovery_exit is not None:
            self._recovery_exit.cancel()
            self._recovery_exit = None

    def _apply_session(self, session: Optional[AuthSession]) -> None:
        previous_id = self.user.id if self.user else None
        self.session = session
        self.user = session.user if session else None
        current_id = self.user.id if self.user else None
        if current_id != previous_id:
            self._generation += 1
            logger.info("Auth identity changed: %s -> %s", previous_id or "guest", current_id or "guest")
        if self.on_identity_change is not None:
            self.on_identity_change(self.user)

    def _on_auth_state_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        self._apply_session(session)
        if event == AuthEvent.SIGNED_OUT:
            self.confirmation_needed = False
            self.recovery_mode = False
        if event == AuthEvent.PASSWORD_RECOVERY:
            self.recovery_mode = True
        if self.user is not None and self.user.is_confirmed:
            self.confirmation_needed = False

    # endregion

    # region helpers
    def _msg(self, key: str) -> str:
        return get_message(key, self.locale)

    def _begin(self) -> None:
        self.message = None
        self.error = None

    def _describe(self, exc: Exception, fallback_key: str) -> str:
        return getattr(exc, "message", None) or str(exc) or self._msg(fallback_key)

    def _credential_problem(self, email: str, password: str, honeypot: Optional[str]) -> Optional[str]:
        if not self.gate.valid:
            return "gate_required"
        if honeypot_triggered(honeypot):
            return "bot_detected"
        if not email or not password:
            return "credentials_required"
        return None

    def switch_view(self, view: AuthView) -> None:
        self.view = AuthView(view)
        self._begin()

    # endregion

    # region actions
    async def sign_up(self, email: str, password: str, honeypot: Optional[str] = None) -> bool:
        self._begin()
        email = (email or "").strip()
        problem = self._credential_problem(email, password, honeypot)
        if problem:
            self.error = self._msg(problem)
            return False

        self.loading = True
        try:
            result = await self.backend.sign_up(email, password, redirect_to=self.site_url)
        except Exception as exc:  # noqa: BLE001
            self.error = self._describe(exc, "sign_up_failed")
            logger.info("Sign-up rejected for %s: %s", email, self.error)
            return False
        finally:
            self.loading = False

        if result.user is not None and result.session is None:
            self.confirmation_needed = True
            self.message = self._msg("sign_up_confirm")
        elif result.session is not None:
            self.message = self._msg("sign_up_ok")
        else:
            self.error = self._msg("sign_up_failed")
            return False
        return True

    async def sign_in(self, email: str, password: str, honeypot: Optional[str] = None) -> bool:
        self._begin()
        email = (email or "").strip()
        problem = self._credential_problem(email, password, honeypot)
        if problem:
            self.error = self._msg(problem)
            return False

        self.loading = True
        try:
            result = await self.backend.sign_in_with_password(email, password)
        except Exception as exc:  # noqa: BLE001
            self.error = self._describe(exc, "sign_in_failed")
            logger.info("Sign-in rejected for %s: %s", email, self.error)
            return False
        finally:
            self.loading = False

        if result.user is not None and not result.user.is_confirmed:
            self.confirmation_needed = True
            self.message = self._msg("sign_in_confirm")
        else:
            self.confirmation_needed = False
            self.message = self._msg("sign_in_ok")
        return True

    async def check_confirmation(self) -> bool:
        self._begin()
        generation = self._generation
        self.checking_email = True
        try:
            user = await self.backend.get_user()
        except Exception as exc:  # noqa: BLE001
            if generation == self._generation:
                self.error = self._describe(exc, "email_not_confirmed")
            return False
        finally:
            self.checking_email = False

        if generation != self._generation:
            logger.debug("Discarding confirmation check issued for a previous identity")
            return False
        if user is not None and user.is_confirmed:
            if self.user is not None and self.user.id == user.id:
                self.user = user
            self.confirmation_needed = False
            self.message = self._msg("email_confirmed")
            return True
        self.error = self._msg("email_not_confirmed")
        return False

    async def request_password_reset(self, email: str) -> bool:
        self._begin()
        self.reset_email_sent = False
        email = (email or "").strip()
        if not email:
            self.error = self._msg("email_required")
            return False
        try:
            await self.backend.reset_password_for_email(email, redirect_to=self.site_url)
        except Exception as exc:  # noqa: BLE001
            self.error = self._describe(exc, "reset_failed")
            return False
        self.reset_email_sent = True
        self.message = self._msg("reset_sent")
        return True

    async def update_password(self, new_password: str) -> bool:
        self._begin()
        if not new_password:
            self.error = self._msg("password_required")
            return False
        try:
            await self.backend.update_user(password=new_password)
        except Exception as exc:  # noqa: BLE001
            self.error = self._describe(exc, "password_update_failed")
            return False
        self.message = self._msg("password_updated")
        self._schedule_recovery_exit()
        return True

    def _schedule_recovery_exit(self) -> None:
        if self.password_update_delay <= 0:
            self._leave_recovery()
            return
        if self._recovery_exit is not None:
            self._recovery_exit.cancel()
        loop = asyncio.get_running_loop()
        self._recovery_exit = loop.call_later(self.password_update_delay, self._leave_recovery)

    def _leave_recovery(self) -> None:
        self._recovery_exit = None
        self.recovery_mode = False

    async def sign_out(self) -> None:
        self._begin()
        try:
            await self.backend.sign_out()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Backend sign-out failed, clearing local identity anyway: %s", exc)
        self._generation += 1
        self.confirmation_needed = False
        self.recovery_mode = False
        self.reset_email_sent = False
        self._apply_session(None)
        self.message = self._msg("signed_out")

    async def handle_url(self, url: str) -> str:
        """
        Consume auth tokens carried by a confirmation or recovery link.

        The fragment form (`#access_token=..&refresh_token=..&type=..`) is
        processed at most once per controller and stripped from the returned
        URL. A `type=recovery` query parameter alone also enters recovery.
        """
        parts = urlsplit(url)
        cleaned = url
        if parts.fragment and "access_token" in parts.fragment and not self._fragment_consumed:
            self._fragment_consumed = True
            params = parse_qs(parts.fragment)
            access_token = _first(params, "access_token")
            refresh_token = _first(params, "refresh_token")
            if access_token and refresh_token:
                if _first(params, "type") == "recovery":
                    self.recovery_mode = True
                cleaned = urlunsplit(parts._replace(fragment=""))
                try:
                    await self.backend.set_session(access_token, refresh_token)
                except Exception as exc:  # noqa: BLE001
                    self.error = self._describe(exc, "sign_in_failed")
                    logger.warning("Could not establish session from link: %s", exc)

        if _first(parse_qs(parts.query), "type") == "recovery":
            self.recovery_mode = True
        return cleaned

    # endregion
