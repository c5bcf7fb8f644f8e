"""Командная строка: API-сервер и служебные операции над базой событий."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Callable, Dict, Optional

from relay.core.config import settings
from relay.core.database import make_engine
from relay.core.logger import LOGGING_CONFIG, logger
from relay.core.migrations import run_startup_migrations
from relay.services.bulk_loader import BulkLoadError, load_folder
from relay.services.cleanup import delete_completed
from relay.services.store import EventRepository, StoreError


def _open_repository(db_path: Optional[Path]) -> EventRepository:
    engine = make_engine(db_path or settings.db_file_path)
    run_startup_migrations(engine)
    return EventRepository(engine)


def _run_api_server(args: argparse.Namespace) -> int:  # pragma: no cover - запускает сервер
    import uvicorn

    from relay.main import build_app

    if args.debug:
        LOGGING_CONFIG["loggers"]["relay"]["level"] = "DEBUG"

    application = build_app(args.db)
    port = args.port or settings.port
    logger.info("Запуск HTTP API на %s:%d", settings.host, port)
    uvicorn.run(application, host=settings.host, port=port, log_config=LOGGING_CONFIG)
    return 0


def _run_bulk_loader(args: argparse.Namespace) -> int:
    repository = _open_repository(args.db)
    try:
        count = load_folder(repository, args.folder, args.max_files)
    except (BulkLoadError, StoreError) as exc:
        logger.error("Импорт прерван: %s", exc)
        return 1
    finally:
        repository.close()

    logger.info("Импортировано %d событий из %s", count, args.folder)
    return 0


def _run_regen(args: argparse.Namespace) -> int:
    repository = _open_repository(args.db)
    try:
        affected, total = repository.regenerate_index()
    except StoreError as exc:
        logger.error("Не удалось пересчитать индекс: %s", exc)
        return 1
    finally:
        repository.close()

    pct = (affected / total * 100.0) if total else 0.0
    logger.info("Пересчитано %d/%d записей индекса (%.2f %%)", affected, total, pct)
    return 0


def _run_delete_completed(args: argparse.Namespace) -> int:
    repository = _open_repository(args.db)
    try:
        delete_completed(repository, args.days, dry_run=args.dry_run)
    except StoreError as exc:
        logger.error("Не удалось удалить завершённые события: %s", exc)
        return 1
    finally:
        repository.close()
    return 0


def _non_negative_int(raw: str) -> int:
    value = int(raw)
    if value < 0:
        raise argparse.ArgumentTypeError("значение не может быть отрицательным")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Создаёт парсер аргументов командной строки."""

    parser = argparse.ArgumentParser(
        prog="relay",
        description="Ретранслятор уведомлений Street Manager о дорожных работах.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parent = argparse.ArgumentParser(add_help=False)
    db_parent.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Путь к файлу SQLite (по умолчанию из настроек DB_PATH)",
    )

    api = subparsers.add_parser("api-server", parents=[db_parent], help="Запустить HTTP API")
    api.add_argument("--port", type=int, default=None, help="Порт HTTP-сервера")
    api.add_argument("--debug", action="store_true", help="Подробное логирование")

    bulk = subparsers.add_parser(
        "bulk-loader", parents=[db_parent], help="Загрузить сообщения из каталога"
    )
    bulk.add_argument("folder", type=Path, help="Каталог с JSON-файлами сообщений")
    bulk.add_argument(
        "--max-files",
        type=_non_negative_int,
        default=None,
        help="Ограничить число обрабатываемых файлов",
    )

    subparsers.add_parser("regen", parents=[db_parent], help="Пересчитать R-tree индекс")

    delete = subparsers.add_parser(
        "delete-completed", parents=[db_parent], help="Удалить завершённые события"
    )
    delete.add_argument(
        "--days",
        type=_non_negative_int,
        required=True,
        help="Удалять события, завершившиеся более N дней назад",
    )
    delete.add_argument(
        "--dry-run",
        action="store_true",
        help="Только показать, какие события будут удалены",
    )

    return parser


_COMMANDS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "api-server": _run_api_server,
    "bulk-loader": _run_bulk_loader,
    "regen": _run_regen,
    "delete-completed": _run_delete_completed,
}


def main(argv: list[str] | None = None) -> int:
    """Точка входа CLI."""

    args = build_parser().parse_args(argv)
    return _COMMANDS[args.command](args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
