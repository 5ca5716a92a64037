from __future__ import annotations

from functools import lru_cache

from sutra_reader.reading import ReaderConfig, ReaderSession, build_session


@lru_cache(maxsize=1)
def get_config() -> ReaderConfig:
    return ReaderConfig.from_env()


@lru_cache(maxsize=1)
def get_session() -> ReaderSession:
    return build_session(get_config())


async def get_reader() -> ReaderSession:
    session = get_session()
    if not session.started:
        await session.start()
    return session
