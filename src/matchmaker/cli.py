"""Command line entry point for database setup, imports and recommendations."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from matchmaker.config.settings import MatchmakerSettings, get_settings
from matchmaker.core.logging_config import setup_logging
from matchmaker.domain.errors import MatchmakerError
from matchmaker.infrastructure.persistence.session import create_schema, make_engine, make_session_factory
from matchmaker.lifecycle.uow import UnitOfWorkFactory, sqlalchemy_uow_factory
from matchmaker.matching.tag_graph import TagGraphStore
from matchmaker.services.recommendations import RecommendationService
from matchmaker.services.supervisors import SupervisorImportService
from matchmaker.services.tag_admin import TagImportService

logger = logging.getLogger("matchmaker.cli")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="matchmaker", description="Supervisor matching administration")
    parser.add_argument("--database-url", default=None, help="overrides MATCHMAKER_DATABASE_URL")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all tables")

    tags = sub.add_parser("import-tags", help="replace tag similarities from a JSON file")
    tags.add_argument("path", type=Path)

    supervisors = sub.add_parser("import-supervisors", help="register or resize supervisor capacity")
    supervisors.add_argument("path", type=Path)

    recommend = sub.add_parser("recommend", help="print ranked supervisors for a student")
    recommend.add_argument("student_id")
    recommend.add_argument("--available-only", action="store_true")
    recommend.add_argument("--limit", type=int, default=None)
    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> MatchmakerSettings:
    overrides: dict[str, Any] = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    return get_settings(**overrides)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _run(args: argparse.Namespace, settings: MatchmakerSettings, uow_factory: UnitOfWorkFactory) -> Any:
    if args.command == "import-tags":
        summary = TagImportService(uow_factory, TagGraphStore()).bulk_import(_read_json(args.path))
        return {"tagsProcessed": summary.tags_processed, "similaritiesReplaced": summary.similarities_replaced}
    if args.command == "import-supervisors":
        result = SupervisorImportService(uow_factory).bulk_import(_read_json(args.path))
        return {"created": result.created, "updated": result.updated}
    if args.command == "recommend":
        store = TagGraphStore()
        TagImportService(uow_factory, store).reload()
        service = RecommendationService.from_settings(uow_factory, store, settings)
        return service.recommend(args.student_id, available_only=args.available_only, limit=args.limit)
    raise ValueError(f"unknown command {args.command}")  # pragma: no cover - argparse guards


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = _settings(args)
    setup_logging(settings.log_level, settings.log_file)
    engine = make_engine(settings.database_url)
    try:
        if args.command == "init-db":
            create_schema(engine)
            logger.info("schema created", extra={"code": "SCHEMA_CREATED"})
            print(json.dumps({"status": "ok"}))
            return 0
        output = _run(args, settings, sqlalchemy_uow_factory(make_session_factory(engine)))
        print(json.dumps(output, ensure_ascii=False, indent=2))
        return 0
    except MatchmakerError as exc:
        logger.warning("command rejected", extra={"code": exc.error_code, "command": args.command})
        print(f"{exc.error_code}|{exc.message}", file=sys.stderr)
        return 2
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("input unreadable", extra={"code": "INPUT_UNREADABLE", "command": args.command})
        print(f"INPUT_UNREADABLE|{exc}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
