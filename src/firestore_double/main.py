from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
import sys
from typing import Sequence

from firestore_double.client import FakeFirestore
from firestore_double.errors import EmulatorError
from firestore_double.settings import load_settings
from firestore_double.storage.seed import read_seed_file

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load seed data into the in-memory Firestore and print it.")
    parser.add_argument(
        "--seed",
        default=None,
        help="Seed JSON file. If omitted, FIRESTORE_DOUBLE_SEED_PATH from settings is used.",
    )
    parser.add_argument(
        "--collection-group",
        default=None,
        help="Also list the documents of this collection group.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = parse_args(argv)
    settings = load_settings()

    seed_path = (args.seed or settings.seed_path).strip()
    try:
        database = read_seed_file(seed_path) if seed_path else {}
        client = FakeFirestore(database=database, settings=replace(settings, seed_path=""))
    except (OSError, EmulatorError) as exc:
        print(f"Could not load seed data: {exc}", file=sys.stderr)
        return 2

    LOGGER.info("project=%s database=%s", client.project, client.database)
    print(json.dumps(client.dump(), ensure_ascii=False, indent=2, default=str))

    if args.collection_group:
        snapshot = client.collection_group(args.collection_group).get()
        print(f"collection_group {args.collection_group}: {snapshot.size} document(s)")
        for doc in snapshot:
            print(f"  {doc.reference.path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
