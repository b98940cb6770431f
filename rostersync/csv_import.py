"""
Roster CSV reading.

Turns uploaded CSV text into ImportRow objects. Size, emptiness and missing
name columns are fatal for the whole run (ImportFileError).
"""

import csv
import io
from pathlib import Path
from typing import Dict, List

from .errors import ImportFileError
from .logger import get_logger
from .schema import ImportRow, validate_headers

logger = get_logger()


def read_csv_text(text: str, max_bytes: int) -> List[Dict[str, str]]:
    """
    Parse CSV text into flat records keyed by header.

    Args:
        text: CSV document (first line is the header)
        max_bytes: Upper bound on the UTF-8 size of the document

    Returns:
        List of records with stripped keys and values; blank lines skipped

    Raises:
        ImportFileError: If the text is empty, too large or has no usable header
    """
    if not text or not text.strip():
        raise ImportFileError("No CSV provided")
    size = len(text.encode("utf-8"))
    if size > max_bytes:
        raise ImportFileError(f"CSV too large ({size} bytes, limit {max_bytes})")

    text = text.lstrip("\ufeff")
    try:
        reader = csv.DictReader(io.StringIO(text, newline=""))
        headers = [h.strip() for h in (reader.fieldnames or []) if h is not None]
        if not headers:
            raise ImportFileError("CSV has no header row")
        errors = validate_headers(headers)
        if errors:
            raise ImportFileError("; ".join(errors))

        records: List[Dict[str, str]] = []
        for raw in reader:
            record = {
                k.strip(): (v or "").strip()
                for k, v in raw.items()
                if k is not None and not isinstance(v, list)
            }
            if any(record.values()):
                records.append(record)
    except csv.Error as e:
        raise ImportFileError(f"Could not parse CSV: {e}") from e

    logger.debug("Parsed CSV", rows=len(records), columns=len(headers))
    return records


def load_rows(text: str, max_bytes: int) -> List[ImportRow]:
    """Parse CSV text and keep rows that carry at least one name."""
    rows = [ImportRow.from_record(r) for r in read_csv_text(text, max_bytes)]
    named = [r for r in rows if r.has_name()]
    if not named:
        raise ImportFileError("CSV has no rows with a name")
    skipped = len(rows) - len(named)
    if skipped:
        logger.info(f"Skipped {skipped} rows without a name")
    return named


def read_file(path: Path) -> str:
    if not path.exists():
        raise ImportFileError(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        return f.read()
