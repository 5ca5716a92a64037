from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from sutra_reader.reading import AuthView


class ChallengeIn(BaseModel):
    answer: str


class ViewIn(BaseModel):
    view: AuthView


class CredentialsIn(BaseModel):
    email: str = ""
    password: str = ""
    # Honeypot: the page renders this field hidden, people leave it empty.
    nickname: Optional[str] = None


class EmailIn(BaseModel):
    email: str = ""


class PasswordIn(BaseModel):
    password: str = ""


class CallbackIn(BaseModel):
    url: str


class FilterIn(BaseModel):
    search: str = ""
    unread_only: bool = False


class ConfirmReadIn(BaseModel):
    typed: str


class AnnotationIn(BaseModel):
    content: str
