"""Extract the accounting period printed in the header of a ledger export.

Ledger exports produced by the accounting software start with a header block
where the period is spread over several rows, for instance::

    Période du 01/01/2024
    au
    31/12/2024

The extractor flattens every row of the first sheet to a single string and
walks the rows looking for that pattern.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from typing import Iterable, Optional, Sequence

import pandas as pd

from .errors import ParseError, PeriodExtractionError
from .french_dates import find_date_token, format_french_date, format_yyyymmdd, parse_french_date

LOGGER = logging.getLogger(__name__)

START_MARKERS = ("période du", "periode du")
END_MARKER = "au"


@dataclass(frozen=True)
class ExtractedPeriod:
    """Inclusive date interval read from a ledger."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise PeriodExtractionError(
                "La date de début de période est postérieure à la date de fin",
                context={
                    "start": self.start.isoformat(),
                    "end": self.end.isoformat(),
                },
            )

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def folder_token(self) -> str:
        return f"{format_yyyymmdd(self.start)}-{format_yyyymmdd(self.end)}"

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    def __str__(self) -> str:
        return f"{format_french_date(self.start)} - {format_french_date(self.end)}"


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if value is pd.NaT:
        return ""
    if isinstance(value, (datetime, date)):
        return format_french_date(value)
    return str(value)


def _row_text(row: Iterable[object]) -> str:
    return " ".join(_cell_text(cell) for cell in row)


def _first_date(text: str) -> Optional[date]:
    if find_date_token(text) is None:
        return None
    try:
        return parse_french_date(text)
    except ParseError:
        LOGGER.debug("Ignoring invalid date token in %r", text)
        return None


def read_first_sheet_rows(content: bytes) -> list[list[object]]:
    """Return the raw cell values of the first worksheet of an xls/xlsx payload."""

    try:
        frame = pd.read_excel(
            BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=object,
            keep_default_na=False,
            na_filter=False,
        )
    except Exception as exc:  # pandas surfaces engine specific errors
        raise PeriodExtractionError(
            "Impossible de lire le fichier Excel",
            context={"reason": str(exc)},
        ) from exc
    return frame.values.tolist()


def extract_period_from_rows(rows: Sequence[Sequence[object]]) -> ExtractedPeriod:
    """Find the ``Période du <date> ... au <date>`` header in ``rows``."""

    texts = [_row_text(row) for row in rows]
    start: Optional[date] = None
    end: Optional[date] = None

    for index, text in enumerate(texts):
        lowered = text.lower()
        if any(marker in lowered for marker in START_MARKERS):
            found = _first_date(text)
            if found is not None:
                start = found

        if start is not None and lowered.strip() == END_MARKER:
            if index + 1 < len(texts):
                found = _first_date(texts[index + 1])
                if found is not None:
                    end = found
                    break

    if start is None or end is None:
        raise PeriodExtractionError()

    return ExtractedPeriod(start=start, end=end)


def extract_period(content: bytes) -> ExtractedPeriod:
    """Read ``content`` as a workbook and extract its accounting period."""

    return extract_period_from_rows(read_first_sheet_rows(content))


__all__ = [
    "ExtractedPeriod",
    "read_first_sheet_rows",
    "extract_period_from_rows",
    "extract_period",
]
