"""Command-line entry point: `cookbook <command>`."""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import crud
from .config import get_settings
from .db import init_db, make_engine, make_session_factory
from .importer import import_document
from .normalize import DocumentValidationError
from .recipes import export_document, load_document

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cookbook", description="Chang Cookbook data tools"
    )
    parser.add_argument(
        "--database-url", help="override COOKBOOK_DATABASE_URL for this run"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all tables")

    p = sub.add_parser("import", help="import a recipe JSON document")
    p.add_argument("path", type=Path)

    sub.add_parser("seed-categories", help="create the default categories")
    sub.add_parser("reconcile-counts", help="recompute category counts")

    p = sub.add_parser("export", help="write every recipe to a JSON document")
    p.add_argument("path", type=Path)
    return parser


def run(args, db, settings) -> int:
    if args.command == "init-db":
        print("Database ready")
        return 0

    if args.command == "import":
        try:
            document = load_document(args.path)
        except FileNotFoundError:
            logger.error("%s not found", args.path)
            return 1
        except json.JSONDecodeError as exc:
            logger.error("%s is not valid JSON: %s", args.path, exc)
            return 1
        try:
            result = import_document(
                db,
                document,
                admin_email=settings.admin_email,
                admin_name=settings.admin_name,
            )
        except DocumentValidationError as exc:
            logger.error("Import aborted: %s", exc)
            return 1
        print(result.model_dump_json(indent=2))
        return 0

    if args.command == "seed-categories":
        counts = crud.seed_categories(db)
        print(f"Seeded {len(crud.DEFAULT_CATEGORIES)} categories")
        for category_id, n in sorted(counts.items()):
            print(f"- {category_id}: {n} recipe(s)")
        return 0

    if args.command == "reconcile-counts":
        counts = crud.reconcile_category_counts(db)
        for category_id, n in sorted(counts.items()):
            print(f"- {category_id}: {n} recipe(s)")
        return 0

    if args.command == "export":
        doc = export_document(db)
        args.path.write_text(
            json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        print(f"Exported {len(doc['recipes'])} recipe(s) to {args.path}")
        return 0

    raise ValueError(f"unknown command {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)-8s] %(message)s",
    )

    engine = make_engine(
        args.database_url or settings.database_url, echo=settings.echo_sql
    )
    init_db(engine)
    db = make_session_factory(engine)()
    try:
        return run(args, db, settings)
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
