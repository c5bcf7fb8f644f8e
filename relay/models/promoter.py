"""Организация-исполнитель работ (promoter) из справочника."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class PromoterOrg:
    id: str
    name: str
    url: str
    favicon: Optional[str] = None

    @classmethod
    def from_csv_row(cls, row: List[str]) -> "PromoterOrg":
        """Строка CSV без заголовка: ``id,name,url[,favicon]``."""

        if len(row) < 3:
            raise ValueError(f"Ожидалось минимум 3 колонки, получено {len(row)}")

        org_id = row[0].strip()
        if not org_id:
            raise ValueError("Пустой идентификатор организации")

        favicon = row[3].strip() if len(row) >= 4 and row[3].strip() else None
        return cls(id=org_id, name=row[1].strip(), url=row[2].strip(), favicon=favicon)


__all__ = ["PromoterOrg"]
