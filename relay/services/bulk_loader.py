"""Загрузка сохранённых сообщений издателя из каталога одним пакетом."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from relay.core.logger import logger
from relay.services.normaliser import NormalisationError, normalise
from relay.services.store import EventRepository, StoreError

PROGRESS_EVERY = 100


class BulkLoadError(RuntimeError):
    """Ошибка пакетной загрузки; весь пакет откатывается."""


def walk_files(root: Path | str, max_files: Optional[int] = None) -> List[Path]:
    """Все файлы под ``root`` в детерминированном порядке, не более ``max_files``."""

    root = Path(root)
    if not root.is_dir():
        raise BulkLoadError(f"Каталог не найден: {root}")

    files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            if max_files is not None and len(files) >= max_files:
                return files
            files.append(Path(dirpath) / name)
    return files


def load_folder(repository: EventRepository, folder: Path | str, max_files: Optional[int] = None) -> int:
    """Нормализует и записывает все файлы каталога; возвращает число событий."""

    logger.info("Поиск файлов для импорта в %s", folder)
    files = walk_files(folder, max_files)
    logger.info("Найдено %d файлов", len(files))

    with repository.batch_upsert() as batch:
        for idx, path in enumerate(files, start=1):
            try:
                event = normalise(path.read_bytes())
            except (OSError, NormalisationError) as exc:
                raise BulkLoadError(f"Не удалось загрузить файл {path}: {exc}") from exc

            try:
                batch.upsert(event)
            except StoreError as exc:
                raise BulkLoadError(f"Не удалось записать событие из файла {path}: {exc}") from exc

            if idx % PROGRESS_EVERY == 0:
                logger.info("Обработано %d из %d файлов", idx, len(files))

    logger.info("Импорт завершён: записано %d событий", batch.count)
    return batch.count


__all__ = ["BulkLoadError", "load_folder", "walk_files"]
