"""Helpers to read and print dates written the French way (DD/MM/YYYY)."""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from .errors import ParseError

DATE_TOKEN_PATTERN = re.compile(r"\d{2}/\d{2}/\d{2,4}")


def find_date_token(text: str) -> Optional[str]:
    """Return the first ``DD/MM/YY`` or ``DD/MM/YYYY`` token found in ``text``."""

    match = DATE_TOKEN_PATTERN.search(text or "")
    return match.group(0) if match else None


def parse_french_date(text: str) -> date:
    """Parse the first date token of ``text``.

    Two digit years are read as ``2000 + year``; there is no century pivot, so
    ``31/12/99`` becomes 2099-12-31.
    """

    token = find_date_token(text)
    if token is None:
        raise ParseError(
            "Aucune date au format JJ/MM/AAAA trouvée",
            context={"text": text},
        )

    day_str, month_str, year_str = token.split("/")
    year = int(year_str)
    if year < 100:
        year += 2000

    try:
        return date(year, int(month_str), int(day_str))
    except ValueError as exc:
        raise ParseError(
            f"Date invalide : {token}",
            context={"text": text},
        ) from exc


def format_yyyymmdd(value: date) -> str:
    return value.strftime("%Y%m%d")


def format_french_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


__all__ = [
    "DATE_TOKEN_PATTERN",
    "find_date_token",
    "parse_french_date",
    "format_yyyymmdd",
    "format_french_date",
]
