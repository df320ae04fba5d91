# digital_twin/services/ingest_index.py
"""
Build/ensure the static-fact embedding store, and inspect the calendar feed.

Usage:
  # from project root
  python -m digital_twin.services.ingest_index

Options:
  --data /path/to/personal_data.json   (override the facts file)
  --rebuild                            (re-embed every fact even if persisted)
  --list-calendars                     (print calendars and the next events)
  --days N                             (event preview window, default 14)
  --quiet                              (reduce logging noise)
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .calendar import GoogleCalendarProvider, fetch_multiple_calendars, resolve_calendar_ids
from .corpus import DocumentStore, StaticFactStore, event_to_document
from .errors import TwinError
from .settings import PERSONAL_DATA_PATH
from .vectorstore import OpenAIEmbedder, StaticEmbeddingStore

logger = logging.getLogger("digital_twin.ingest")


def ensure_index(data_path: Path | str | None = None, rebuild: bool = False, embedder=None,
                 embedding_path: Path | str | None = None) -> int:
    """Embed static facts once (or again with rebuild); return the document count."""
    store = DocumentStore(
        embedder or OpenAIEmbedder(),
        facts=StaticFactStore(Path(data_path) if data_path else PERSONAL_DATA_PATH),
        embedding_store=StaticEmbeddingStore(embedding_path) if embedding_path else None,
    )
    if rebuild:
        logger.info("Forcing rebuild...")
        docs = store.refresh_static()
    else:
        docs = store.ensure_static()
    logger.info("Static embedding store ready (%d documents).", len(docs))
    return len(docs)


def preview_calendars(days: int, provider=None) -> None:
    provider = provider or GoogleCalendarProvider()
    calendars = provider.list_calendars()
    print("Available calendars:")
    for cal in calendars:
        print(f"  - {cal.display_name} ({cal.id}){' [PRIMARY]' if cal.is_primary else ''}")

    ids = resolve_calendar_ids(calendars)
    outcome = fetch_multiple_calendars(provider, ids, days)
    if not outcome.is_ok:
        print(f"Calendar fetch degraded: {outcome.degraded_reason}")
        return
    print(f"\nEvents from {ids} ({len(outcome.events)} in {days} days):")
    for event in outcome.events:
        print(f"  {event_to_document(event).content}")


def main():
    parser = argparse.ArgumentParser(description="Build/ensure static-fact embeddings.")
    parser.add_argument("--data", dest="data_path", default=None, help="Personal data JSON file")
    parser.add_argument("--rebuild", action="store_true", help="Force re-embedding of every fact")
    parser.add_argument("--list-calendars", action="store_true", help="Preview calendars and events")
    parser.add_argument("--days", type=int, default=14, help="Event preview window in days")
    parser.add_argument("--quiet", action="store_true",
                        help="Reduce logging (INFO→WARNING)")

    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO)

    try:
        if args.list_calendars:
            preview_calendars(args.days)
        else:
            count = ensure_index(args.data_path, rebuild=args.rebuild)
            print(f"Done ensuring embeddings for {count} static documents.")
    except TwinError as e:
        logger.exception("Ingestion failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
