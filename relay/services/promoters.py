"""Справочник организаций-исполнителей работ и обогащение результатов поиска."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from relay.core.logger import logger
from relay.models import PromoterOrg

PromoterOrgs = Dict[str, PromoterOrg]


def _normalise_swa_code(code: Optional[str]) -> Optional[str]:
    """SWA-коды сравниваются без ведущих нулей: ``"0042"`` и ``"42"`` совпадают."""

    if code is None:
        return None
    code = str(code).strip()
    if not code:
        return None
    return code.lstrip("0") or "0"


def load_promoter_orgs(path: Path | str) -> PromoterOrgs:
    """Читает CSV ``id,name,url[,favicon]`` без заголовка.

    Повторяющийся идентификатор считается ошибкой, отсутствующий файл даёт
    пустой справочник.
    """

    path = Path(path)
    if not path.exists():
        logger.warning("Справочник организаций не найден: %s", path)
        return {}

    orgs: PromoterOrgs = {}
    with path.open("r", encoding="utf-8", newline="") as handle:
        for line_num, row in enumerate(csv.reader(handle), start=1):
            if not row or not any(cell.strip() for cell in row):
                continue
            try:
                org = PromoterOrg.from_csv_row(row)
            except ValueError as exc:
                raise ValueError(f"{path}: строка {line_num}: {exc}") from exc

            key = _normalise_swa_code(org.id)
            if key in orgs:
                raise ValueError(f"{path}: повторяющийся идентификатор организации {org.id!r}")
            orgs[key] = org

    logger.info("Загружено %d организаций из %s", len(orgs), path)
    return orgs


def lookup_promoter(orgs: Mapping[str, PromoterOrg], swa_code: Optional[str]) -> Optional[PromoterOrg]:
    key = _normalise_swa_code(swa_code)
    if key is None:
        return None
    return orgs.get(key)


def enrich_event(payload: Dict[str, Any], orgs: Mapping[str, PromoterOrg]) -> Dict[str, Any]:
    """Добавляет ``promoter_website_url`` и ``promoter_logo_url``, если организация известна."""

    org = lookup_promoter(orgs, payload.get("promoter_swa_code"))
    if org is None:
        return payload

    if org.url:
        payload["promoter_website_url"] = org.url
    if org.favicon:
        payload["promoter_logo_url"] = org.favicon
    return payload


__all__ = ["PromoterOrgs", "enrich_event", "load_promoter_orgs", "lookup_promoter"]
