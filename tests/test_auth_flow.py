import asyncio
import random

import pytest

from sutra_reader.reading import (
    AuthFlowController,
    AuthState,
    AuthView,
    BackendError,
    HumanVerificationGate,
    InMemoryAuthBackend,
)
from sutra_reader.reading.messages import get_message

PASSWORD = "secret-123"


def run(coro):
    return asyncio.run(coro)


def msg(key):
    return get_message(key, "en")


async def signed_in_unconfirmed(controller, backend, email="a@example.com"):
    await backend.sign_up(email, PASSWORD)
    await controller.sign_in(email, PASSWORD)


def test_sign_up_without_session_needs_confirmation(controller, backend):
    assert run(controller.sign_up(" a@example.com ", PASSWORD))
    assert controller.confirmation_needed
    assert controller.state == AuthState.AWAITING_CONFIRMATION
    assert not controller.authenticated_and_confirmed
    assert controller.user is None
    assert controller.message == msg("sign_up_confirm")
    assert controller.error is None
    assert backend.last_link("a@example.com", kind="signup")


def test_sign_up_with_direct_session_authenticates(gate):
    backend = InMemoryAuthBackend(require_confirmation=False)
    controller = AuthFlowController(backend, gate=gate, locale="en")
    run(controller.start())

    assert run(controller.sign_up("b@example.com", PASSWORD))
    assert controller.state == AuthState.AUTHENTICATED
    assert controller.authenticated_and_confirmed
    assert controller.user.email == "b@example.com"
    assert controller.message == msg("sign_up_ok")


@pytest.mark.parametrize(
    "email,password,honeypot,solved,expected",
    [
        ("a@example.com", PASSWORD, None, False, "gate_required"),
        ("a@example.com", PASSWORD, "i am a bot", True, "bot_detected"),
        ("   ", PASSWORD, None, True, "credentials_required"),
        ("a@example.com", "", None, True, "credentials_required"),
    ],
)
def test_validation_errors_skip_the_backend(backend, email, password, honeypot, solved, expected):
    gate = HumanVerificationGate(rng=random.Random(1))
    if solved:
        gate.initialize()
        gate.input = str(sum(gate.pair))
    controller = AuthFlowController(backend, gate=gate, locale="en")

    for action in (controller.sign_up, controller.sign_in):
        assert not run(action(email, password, honeypot=honeypot))
        assert controller.error == msg(expected)
        assert controller.message is None
    assert backend.accounts == {}
    assert controller.state == AuthState.ANONYMOUS


def test_backend_rejection_reports_message_and_stays_anonymous(controller, backend):
    run(controller.sign_up("a@example.com", PASSWORD))
    controller.confirmation_needed = False

    assert not run(controller.sign_up("a@example.com", PASSWORD))
    assert controller.error == "User already registered"
    assert controller.message is None

    assert not run(controller.sign_in("a@example.com", "wrong-password"))
    assert controller.error == "Invalid login credentials"
    assert controller.state == AuthState.ANONYMOUS
    assert not controller.loading


def test_sign_in_unconfirmed_then_check_confirmation(controller, backend):
    run(controller.start())
    run(signed_in_unconfirmed(controller, backend))
    assert controller.state == AuthState.AWAITING_CONFIRMATION
    assert controller.message == msg("sign_in_confirm")

    assert not run(controller.check_confirmation())
    assert controller.error == msg("email_not_confirmed")
    assert controller.state == AuthState.AWAITING_CONFIRMATION

    backend.confirm_email("a@example.com")
    assert run(controller.check_confirmation())
    assert controller.message == msg("email_confirmed")
    assert controller.error is None
    assert controller.state == AuthState.AUTHENTICATED
    assert controller.user.is_confirmed


def test_sign_in_confirmed_user(controller, backend):
    run(controller.start())
    run(backend.sign_up("a@example.com", PASSWORD))
    backend.confirm_email("a@example.com")

    assert run(controller.sign_in("a@example.com", PASSWORD))
    assert controller.state == AuthState.AUTHENTICATED
    assert controller.message == msg("sign_in_ok")


def test_confirmed_notification_wins_over_awaiting_state(controller, backend):
    run(controller.start())
    run(controller.sign_up("a@example.com", PASSWORD))
    run(controller.sign_in("a@example.com", PASSWORD))
    assert controller.state == AuthState.AWAITING_CONFIRMATION

    link = backend.last_link("a@example.com", kind="signup")
    cleaned = run(controller.handle_url(link))
    assert "#" not in cleaned
    assert controller.state == AuthState.AUTHENTICATED
    assert not controller.confirmation_needed


def test_stale_confirmation_check_is_discarded(gate):
    class SlowUserBackend(InMemoryAuthBackend):
        release = None

        async def get_user(self):
            await self.release.wait()
            return await super().get_user()

    backend = SlowUserBackend()
    controller = AuthFlowController(backend, gate=gate, locale="en")

    async def scenario():
        backend.release = asyncio.Event()
        await controller.start()
        await signed_in_unconfirmed(controller, backend)
        backend.confirm_email("a@example.com")

        check = asyncio.ensure_future(controller.check_confirmation())
        await asyncio.sleep(0)
        await controller.sign_out()
        backend.release.set()
        return await check

    assert run(scenario()) is False
    assert controller.state == AuthState.ANONYMOUS
    assert controller.message == msg("signed_out")
    assert controller.error is None


def test_password_reset_request(controller, backend):
    run(backend.sign_up("a@example.com", PASSWORD))

    assert not run(controller.request_password_reset("  "))
    assert controller.error == msg("email_required")

    assert run(controller.request_password_reset("a@example.com"))
    assert controller.reset_email_sent
    assert controller.message == msg("reset_sent")
    assert controller.state == AuthState.ANONYMOUS
    assert backend.last_link("a@example.com", kind="recovery")


def test_recovery_link_then_password_update(controller, backend):
    run(controller.start())
    run(backend.sign_up("a@example.com", PASSWORD))
    backend.confirm_email("a@example.com")
    run(controller.request_password_reset("a@example.com"))
    link = backend.last_link("a@example.com", kind="recovery")

    cleaned = run(controller.handle_url(link))
    assert cleaned == "http://localhost:3000"
    assert controller.state == AuthState.RECOVERY
    assert controller.user.email == "a@example.com"

    assert not run(controller.update_password(""))
    assert controller.error == msg("password_required")
    assert controller.state == AuthState.RECOVERY

    assert run(controller.update_password("brand-new-pass"))
    assert controller.message == msg("password_updated")
    assert controller.state == AuthState.AUTHENTICATED

    run(controller.sign_out())
    run(controller.sign_in("a@example.com", "brand-new-pass"))
    assert controller.state == AuthState.AUTHENTICATED


def test_recovery_exit_waits_for_display_delay(backend, gate):
    controller = AuthFlowController(backend, gate=gate, locale="en", password_update_delay=0.01)

    async def scenario():
        await controller.start()
        await backend.sign_up("a@example.com", PASSWORD)
        backend.confirm_email("a@example.com")
        await backend.reset_password_for_email("a@example.com")
        await controller.handle_url(backend.last_link("a@example.com", kind="recovery"))
        await controller.update_password("brand-new-pass")
        still_recovering = controller.recovery_mode
        await asyncio.sleep(0.05)
        return still_recovering

    assert run(scenario()) is True
    assert not controller.recovery_mode
    assert controller.state == AuthState.AUTHENTICATED


def test_fragment_is_consumed_once(controller, backend):
    run(backend.sign_up("a@example.com", PASSWORD))
    run(backend.sign_up("b@example.com", PASSWORD))
    first = backend.last_link("a@example.com")
    second = backend.last_link("b@example.com")

    run(controller.start())
    run(controller.handle_url(first))
    assert controller.user.email == "a@example.com"

    assert run(controller.handle_url(second)) == second
    assert controller.user.email == "a@example.com"


def test_bad_fragment_tokens_report_error(controller):
    url = "http://localhost:3000/?x=1#access_token=nope&refresh_token=nope&type=recovery"
    cleaned = run(controller.handle_url(url))
    assert cleaned == "http://localhost:3000/?x=1"
    assert controller.error == "Invalid Refresh Token"
    assert controller.recovery_mode


def test_query_parameter_enters_recovery(controller):
    run(controller.handle_url("http://localhost:3000/?type=recovery"))
    assert controller.state == AuthState.RECOVERY


def test_sign_out_is_unconditional(gate):
    class FlakyBackend(InMemoryAuthBackend):
        async def sign_out(self):
            raise BackendError("network down")

    backend = FlakyBackend(require_confirmation=False)
    controller = AuthFlowController(backend, gate=gate, locale="en")
    run(controller.start())
    run(controller.sign_up("a@example.com", PASSWORD))
    assert controller.state == AuthState.AUTHENTICATED

    run(controller.sign_out())
    assert controller.state == AuthState.ANONYMOUS
    assert controller.user is None
    assert controller.message == msg("signed_out")


def test_identity_changes_are_forwarded(gate):
    seen = []
    backend = InMemoryAuthBackend(require_confirmation=False)
    controller = AuthFlowController(backend, gate=gate, on_identity_change=seen.append)
    run(controller.start())
    run(controller.sign_up("a@example.com", PASSWORD))
    run(controller.sign_out())

    ids = [user.id if user else None for user in seen]
    assert ids[0] is None
    assert ids[-1] is None
    assert any(ids)
    controller.close()


def test_start_restores_existing_session(gate):
    backend = InMemoryAuthBackend(require_confirmation=False)
    run(backend.sign_up("a@example.com", PASSWORD))

    controller = AuthFlowController(backend, gate=gate)
    run(controller.start())
    assert controller.user.email == "a@example.com"
    assert controller.state == AuthState.AUTHENTICATED


def test_switch_view_clears_feedback(controller):
    controller.error = "boom"
    controller.message = "hi"
    controller.switch_view("register")
    assert controller.view == AuthView.REGISTER
    assert controller.error is None and controller.message is None


def test_chinese_messages_by_default(backend):
    controller = AuthFlowController(backend, gate=HumanVerificationGate())
    run(controller.sign_in("a@example.com", PASSWORD))
    assert controller.error == "请先通过人类验证"
