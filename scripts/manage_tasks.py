from __future__ import annotations

import argparse

from assistant_orchestrator.config.settings import get_settings
from assistant_orchestrator.storage.postgres import PostgresTaskStorage


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create the task schema in PostgreSQL or inspect a stored task."
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="PostgreSQL connection URL. Defaults to ASSISTANT_DATABASE_URL or DATABASE_URL.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("migrate", help="Create the tasks table and its indexes.")
    show = subparsers.add_parser("show", help="Print a task and its messages as JSON.")
    show.add_argument("task_id", type=str)
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    database_url = args.database_url or get_settings().resolved_database_url()
    if not database_url:
        raise SystemExit("Missing database URL. Pass --database-url or set ASSISTANT_DATABASE_URL.")
    storage = PostgresTaskStorage(database_url)

    if args.command == "migrate":
        storage.migrate()
        print("Task schema is up to date.")
        return

    record = storage.get_task(args.task_id)
    if record is None:
        raise SystemExit(f"Task {args.task_id} not found.")
    print(record.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
