from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

GUEST_USER = "guest"

_ID_ALPHABET = string.digits + string.ascii_lowercase


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AUTHENTICATED = "authenticated"
    RECOVERY = "recovery"


class AuthEvent(str, Enum):
    INITIAL_SESSION = "initial_session"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"
    USER_UPDATED = "user_updated"
    PASSWORD_RECOVERY = "password_recovery"


class AuthView(str, Enum):
    LOGIN = "login"
    REGISTER = "register"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def random_id(length: int = 9) -> str:
    return "".join(random.choice(_ID_ALPHABET) for _ in range(length))


def paragraph_key(sutra_id: str, index: int) -> str:
    return f"{sutra_id}:{index}"


def split_paragraph_key(key: str) -> Tuple[str, int]:
    """
    Inverse of `paragraph_key`. Sutra ids may themselves contain ':' so the
    index is taken from the last separator.
    """
    sutra_id, _, index = key.rpartition(":")
    if not sutra_id:
        raise ValueError(f"Not a paragraph key: {key!r}")
    return sutra_id, int(index)


@dataclass
class Sutra:
    id: str
    title: str
    content: List[str] = field(default_factory=list)

    def paragraph_keys(self) -> List[str]:
        return [paragraph_key(self.id, idx) for idx in range(len(self.content))]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "content": list(self.content)}


@dataclass
class Annotation:
    id: str
    paragraph_key: str
    user_id: str
    content: str
    created_at: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "paragraphKey": self.paragraph_key,
            "userId": self.user_id,
            "content": self.content,
            "createdAt": self.created_at,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "paragraph_key": self.paragraph_key,
            "user_id": self.user_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Annotation":
        return cls(
            id=str(data.get("id", "")),
            paragraph_key=str(data.get("paragraphKey", data.get("paragraph_key", ""))),
            user_id=str(data.get("userId", data.get("user_id", GUEST_USER))),
            content=str(data.get("content", "")),
            created_at=str(data.get("createdAt", data.get("created_at", ""))),
        )


@dataclass
class Identity:
    id: str
    email: str
    email_confirmed_at: Optional[str] = None

    @property
    def is_confirmed(self) -> bool:
        return bool(self.email_confirmed_at)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user: Identity


@dataclass
class AuthResult:
    """
    Backend response for sign-up and sign-in. A created identity without a
    session means the backend is waiting for email confirmation.
    """

    user: Optional[Identity] = None
    session: Optional[AuthSession] = None


@dataclass
class FilteredSutra:
    """
    A sutra narrowed to the paragraphs that passed a catalog filter. Each
    paragraph keeps its position in the full text so paragraph keys stay
    stable while filtering.
    """

    id: str
    title: str
    paragraphs: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def content(self) -> List[str]:
        return [text for _, text in self.paragraphs]

    def paragraph_keys(self) -> List[str]:
        return [paragraph_key(self.id, idx) for idx, _ in self.paragraphs]
