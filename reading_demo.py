"""
Example: drive a full reading session against the in-process auth provider.

Usage:
    python3 reading_demo.py --email me@example.com --password secret123 \
        --catalog sutras.json --state-dir ./data --export reading_data.json
"""

import argparse
import asyncio
import logging
from pathlib import Path

from sutra_reader.reading import (
    BackendClient,
    InMemoryAuthBackend,
    InMemoryRowStore,
    ReaderConfig,
    SqlAlchemyRowStore,
    build_session,
)


def setup_logging(log_dir: Path) -> None:
    log_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "reader.log", encoding="utf-8"),
        ],
        force=True,
    )


async def run(args: argparse.Namespace) -> None:
    config = ReaderConfig(
        state_dir=str(args.state_dir),
        remote_database_url=args.database_url,
        load_more_delay=0.0,
        password_update_delay=0.0,
        locale=args.locale,
    )
    auth_backend = InMemoryAuthBackend(require_confirmation=True)
    rows = SqlAlchemyRowStore(args.database_url) if args.database_url else InMemoryRowStore()
    reader = build_session(config, backend=BackendClient(auth=auth_backend, rows=rows))
    await reader.start()

    if args.catalog:
        imported = reader.catalog.import_catalog_file(args.catalog)
        print(f"Imported {imported} sutras from {args.catalog}")

    a, b = reader.gate.pair
    reader.gate.input = str(a + b)

    await reader.auth.sign_up(args.email, args.password)
    print(f"sign-up: {reader.auth.message or reader.auth.error} [{reader.auth.state.value}]")

    link = auth_backend.last_link(args.email, kind="signup")
    if link:
        cleaned = await reader.auth.handle_url(link)
        print(f"confirmation link consumed, url now {cleaned} [{reader.auth.state.value}]")
    await reader.auth.check_confirmation()
    print(f"confirmation check: {reader.auth.message or reader.auth.error}")

    visible = reader.visible_catalog()
    if visible:
        first = visible[0]
        for key in first.paragraph_keys()[:2]:
            await reader.confirm_read(key, "over")
        if first.paragraphs:
            await reader.annotate(first.paragraph_keys()[0], args.note)

    unread = reader.visible_catalog(unread_only=True)
    print(f"{sum(len(s.paragraphs) for s in unread)} paragraphs left unread in {len(unread)} sutras")

    if args.export:
        args.export.write_text(reader.store.export_snapshot(), encoding="utf-8")
        print(f"Exported reading data to {args.export}")

    await reader.auth.sign_out()
    reader.close()
    print(f"sign-out: {reader.auth.message} [{reader.auth.state.value}]")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--password", required=True, help="Account password")
    parser.add_argument("--catalog", type=Path, default=None, help="Catalog JSON to import")
    parser.add_argument("--state-dir", type=Path, default=Path("./data"), help="Local state directory")
    parser.add_argument("--database-url", default=None, help="SQL URL for the remote row store")
    parser.add_argument("--export", type=Path, default=None, help="Write the reading snapshot here")
    parser.add_argument("--note", default="first note", help="Annotation text for the first paragraph")
    parser.add_argument("--locale", default="zh", choices=["zh", "en"])
    parser.add_argument("--log-dir", type=Path, default=Path("./logs"))
    args = parser.parse_args()

    setup_logging(args.log_dir)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
