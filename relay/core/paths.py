"""Определение основных путей приложения."""
from __future__ import annotations

from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = PACKAGE_DIR.parent
LOG_DIR = PROJECT_ROOT / "logs"

LOG_DIR.mkdir(parents=True, exist_ok=True)

__all__ = [
    "PACKAGE_DIR",
    "PROJECT_ROOT",
    "LOG_DIR",
]
