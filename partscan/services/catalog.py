"""
Parts catalog: the cached reference list used by identification and the
reconciler that merges spreadsheet imports into it.
"""
import io
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from loguru import logger

from partscan.core.exceptions import CatalogParseError
from partscan.models.schemas import CatalogItem

# Candidate column headers per canonical field, tried in order.
# Add locales here, not in the parsing code.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "part_number": ("partNumber", "Part Number", "PN", "codigo", "part number"),
    "part_name": ("partName", "Part Name", "Name", "nome", "part name"),
    "station": ("station", "Station", "posto", "estacao"),
}

# pandas reader per workbook format; anything else is sniffed from content
EXCEL_ENGINES: Dict[str, str] = {".xlsx": "openpyxl", ".xls": "xlrd"}

# Part numbers that mark a row as unusable
REJECTED_PART_NUMBERS = frozenset({"", "undefined"})


@dataclass
class ImportReport:
    """Outcome of reconciling one tabular import."""
    accepted: int = 0
    rejected: int = 0
    items: List[CatalogItem] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.accepted:
            return "No catalog rows with a part number were found."
        return f"{self.accepted} items integrated into cloud catalog."


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


def resolve_field(row: Mapping[str, Any], aliases: Iterable[str]) -> str:
    """
    First non-empty value among ``aliases``, trimmed.

    Emptiness is judged before trimming: a whitespace-only cell still wins
    over later aliases and resolves to "".
    """
    for alias in aliases:
        text = _cell_text(row.get(alias))
        if text:
            return text.strip()
    return ""


def reconcile_rows(rows: Iterable[Mapping[str, Any]]) -> ImportReport:
    """
    Map loosely keyed rows onto canonical catalog items.

    Rows without a usable part number are dropped and counted as rejected.
    Repeated part numbers collapse to their last occurrence.
    """
    report = ImportReport()
    by_part_number: Dict[str, CatalogItem] = {}
    for row in rows:
        values = {name: resolve_field(row, aliases) for name, aliases in FIELD_ALIASES.items()}
        if values["part_number"] in REJECTED_PART_NUMBERS:
            report.rejected += 1
            continue
        report.accepted += 1
        by_part_number[values["part_number"]] = CatalogItem(**values)
    report.items = list(by_part_number.values())
    return report


def read_table(data: bytes, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read the first sheet of a workbook (or a CSV file) into row dicts.

    Raises:
        CatalogParseError: If the file cannot be parsed as a table
    """
    suffix = Path(filename or "").suffix.lower()
    try:
        if suffix == ".csv":
            frame = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
        else:
            frame = pd.read_excel(
                io.BytesIO(data),
                sheet_name=0,
                engine=EXCEL_ENGINES.get(suffix),
                dtype=str,
                keep_default_na=False,
            )
    except Exception as e:
        logger.error(f"Error parsing catalog file {filename!r}: {e}")
        raise CatalogParseError() from e

    frame.columns = [str(column).strip() for column in frame.columns]
    return frame.to_dict(orient="records")


class CatalogStore:
    """
    Process-wide cache of the parts catalog.

    The cache is only ever replaced wholesale from the persistence
    service, never edited in place.
    """

    def __init__(self, persistence):
        self.persistence = persistence
        self._items: Tuple[CatalogItem, ...] = ()

    def __len__(self) -> int:
        return len(self._items)

    def refresh(self) -> Tuple[CatalogItem, ...]:
        self._items = tuple(self.persistence.list_catalog())
        logger.debug(f"Catalog cache refreshed: {len(self._items)} parts")
        return self._items

    def snapshot(self) -> Tuple[CatalogItem, ...]:
        """Read-only view handed to the identification engine."""
        return self._items


class CatalogImportReconciler:
    """Merges tabular imports into the catalog with upsert semantics."""

    def __init__(self, persistence, store: CatalogStore):
        self.persistence = persistence
        self.store = store

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportReport:
        report = reconcile_rows(rows)
        if not report.items:
            logger.warning(f"Catalog import had no usable rows ({report.rejected} rejected), nothing written")
            return report

        self.persistence.upsert_catalog_rows(report.items)
        self.store.refresh()
        logger.info(f"Catalog import: {report.accepted} accepted, {report.rejected} rejected")
        return report

    def import_file(self, data: bytes, filename: Optional[str] = None) -> ImportReport:
        """Parse a whole file, then merge it. Nothing is written if parsing fails."""
        return self.import_rows(read_table(data, filename))
