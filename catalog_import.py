"""
Catalog import from CSV text.

The header must name exactly the columns in REQUIRED_COLUMNS (any order, any
case). Data rows follow the header's own column order. Validation runs to the
first failing rule and nothing is written when it fails; the import itself
writes row by row and reports how many rows made it.
"""

import csv
import io
import logging
import math
from typing import Callable, Dict, List, Optional, Tuple

from errors import CatalogValidationError
from schemas import ImportReport, Product

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "description", "price", "origincountry")

Row = Dict[str, str]
ProductWriter = Callable[[dict], object]


def _read_rows(raw_text: str) -> List[Tuple[int, List[str]]]:
    reader = csv.reader(io.StringIO((raw_text or "").lstrip("\ufeff")))
    rows = []
    for fields in reader:
        # blank line
        if not fields or (len(fields) == 1 and not fields[0].strip()):
            continue
        rows.append((reader.line_num, fields))
    return rows


def _check_header(fields: List[str]) -> List[str]:
    header = [f.strip().lower() for f in fields]
    missing = [c for c in REQUIRED_COLUMNS if c not in header]
    extra = []
    for h in header:
        if h and h not in REQUIRED_COLUMNS and h not in extra:
            extra.append(h)
    duplicates = sorted({h for h in header if h and header.count(h) > 1})

    problems = []
    if "" in header:
        problems.append("empty column name")
    if missing:
        problems.append("missing required columns: " + ", ".join(missing))
    if extra:
        problems.append("unexpected columns: " + ", ".join(extra))
    if duplicates:
        problems.append("duplicate columns: " + ", ".join(duplicates))
    if problems:
        raise CatalogValidationError("Invalid CSV header: " + "; ".join(problems) + ".")
    return header


def parse_price(value: str) -> Optional[float]:
    try:
        price = float(value.strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def validate_csv(raw_text: str) -> List[Row]:
    """Validate catalog CSV text and return its data rows keyed by column.

    Raises CatalogValidationError describing the first rule that fails.
    """
    rows = _read_rows(raw_text)
    if len(rows) < 2:
        raise CatalogValidationError("CSV must contain a header row and at least one data row.")

    _, header_fields = rows[0]
    header = _check_header(header_fields)
    data = rows[1:]

    for line, fields in data:
        if len(fields) != len(header):
            raise CatalogValidationError(
                f"Row {line} has {len(fields)} fields, expected {len(header)}."
            )

    parsed = []
    for line, fields in data:
        row = {column: value.strip() for column, value in zip(header, fields)}
        if parse_price(row["price"]) is None:
            raise CatalogValidationError(
                f"Row {line}: invalid price '{row['price']}' (must be a positive number)."
            )
        parsed.append(row)
    return parsed


def row_to_product(row: Row) -> Product:
    return Product(
        name=row["name"],
        description=row["description"],
        price=parse_price(row["price"]),
        image_url="",
        origin_country=row.get("origincountry") or None,
    )


def _report(imported: int, failed: int) -> ImportReport:
    if failed == 0:
        return ImportReport(imported=imported, failed=failed, status="success",
                            message=f"Successfully imported {imported} products.")
    if imported > 0:
        return ImportReport(imported=imported, failed=failed, status="partial",
                            message=f"Imported {imported} products; {failed} failed.")
    return ImportReport(imported=imported, failed=failed, status="failed",
                        message=f"Import failed: none of the {failed} products could be saved.")


def import_catalog(raw_text: str, writer: ProductWriter, refresh: Callable[[], object]) -> ImportReport:
    rows = validate_csv(raw_text)
    imported = failed = 0
    for index, row in enumerate(rows, start=1):
        try:
            writer(row_to_product(row).to_document())
            imported += 1
        except Exception:
            failed += 1
            logger.warning("Import of row %d (%s) failed", index, row.get("name"), exc_info=True)

    # the caller must see what was actually persisted
    try:
        refresh()
    except Exception:
        logger.exception("Catalog refresh after import failed")

    report = _report(imported, failed)
    logger.info("Catalog import finished: %s", report.message)
    return report
