from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ReaderConfig:
    state_dir: Optional[str] = "./data"
    remote_database_url: Optional[str] = None
    whoosh_index_dir: Optional[str] = None
    catalog_batch_size: int = 5
    load_more_delay: float = 0.7
    password_update_delay: float = 1.5
    locale: str = "zh"
    site_url: Optional[str] = None
    require_email_confirmation: bool = True
    cors_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "ReaderConfig":
        """
        Build a config from environment variables. An empty READER_STATE_DIR
        disables local persistence entirely.
        """
        return cls(
            state_dir=os.getenv("READER_STATE_DIR", "./data") or None,
            remote_database_url=os.getenv("REMOTE_DATABASE_URL") or None,
            whoosh_index_dir=os.getenv("WHOOSH_DIR") or None,
            catalog_batch_size=int(os.getenv("CATALOG_BATCH_SIZE", "5")),
            load_more_delay=float(os.getenv("LOAD_MORE_DELAY", "0.7")),
            password_update_delay=float(os.getenv("PASSWORD_UPDATE_DELAY", "1.5")),
            locale=os.getenv("READER_LOCALE", "zh"),
            site_url=os.getenv("SITE_URL") or None,
            require_email_confirmation=os.getenv("REQUIRE_EMAIL_CONFIRMATION", "1").lower() not in ("0", "false", "no"),
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()],
        )
