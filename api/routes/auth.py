from __future__ import annotations

from fastapi import APIRouter, Depends

from sutra_reader.reading import ReaderSession

from api.dependencies import get_reader
from api.schemas import CallbackIn, ChallengeIn, CredentialsIn, EmailIn, PasswordIn, ViewIn

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_state(reader: ReaderSession) -> dict:
    auth = reader.auth
    return {
        "state": auth.state,
        "view": auth.view,
        "user": {"id": auth.user.id, "email": auth.user.email} if auth.user else None,
        "authenticated": auth.authenticated_and_confirmed,
        "confirmation_needed": auth.confirmation_needed,
        "recovery_mode": auth.recovery_mode,
        "reset_email_sent": auth.reset_email_sent,
        "challenge": reader.gate.prompt(),
        "challenge_valid": reader.gate.valid,
        "gate_passed": reader.gate.passed,
        "message": auth.message,
        "error": auth.error,
    }


@router.get("/state")
def get_state(reader: ReaderSession = Depends(get_reader)):
    return _auth_state(reader)


@router.post("/challenge")
def answer_challenge(payload: ChallengeIn, reader: ReaderSession = Depends(get_reader)):
    reader.gate.input = payload.answer
    reader.gate.confirm()
    return _auth_state(reader)


@router.post("/challenge/refresh")
def refresh_challenge(reader: ReaderSession = Depends(get_reader)):
    reader.gate.refresh()
    return _auth_state(reader)


@router.post("/view")
def switch_view(payload: ViewIn, reader: ReaderSession = Depends(get_reader)):
    reader.auth.switch_view(payload.view)
    return _auth_state(reader)


@router.post("/sign-up")
async def sign_up(payload: CredentialsIn, reader: ReaderSession = Depends(get_reader)):
    await reader.auth.sign_up(payload.email, payload.password, honeypot=payload.nickname)
    return _auth_state(reader)


@router.post("/sign-in")
async def sign_in(payload: CredentialsIn, reader: ReaderSession = Depends(get_reader)):
    await reader.auth.sign_in(payload.email, payload.password, honeypot=payload.nickname)
    return _auth_state(reader)


@router.post("/check-confirmation")
async def check_confirmation(reader: ReaderSession = Depends(get_reader)):
    await reader.auth.check_confirmation()
    return _auth_state(reader)


@router.post("/password-reset")
async def request_password_reset(payload: EmailIn, reader: ReaderSession = Depends(get_reader)):
    await reader.auth.request_password_reset(payload.email)
    return _auth_state(reader)


@router.post("/password")
async def update_password(payload: PasswordIn, reader: ReaderSession = Depends(get_reader)):
    await reader.auth.update_password(payload.password)
    return _auth_state(reader)


@router.post("/callback")
async def consume_callback(payload: CallbackIn, reader: ReaderSession = Depends(get_reader)):
    cleaned = await reader.auth.handle_url(payload.url)
    return {**_auth_state(reader), "url": cleaned}


@router.post("/sign-out")
async def sign_out(reader: ReaderSession = Depends(get_reader)):
    await reader.auth.sign_out()
    return _auth_state(reader)
