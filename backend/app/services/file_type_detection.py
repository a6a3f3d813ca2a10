"""Guess the accounting category of a spreadsheet from its filename."""

from __future__ import annotations

import re
from typing import Optional

from ..models import FileType

_SEPARATORS = re.compile(r"[0-9_\-.]")

KEYWORDS: dict[FileType, tuple[str, ...]] = {
    FileType.GRAND_LIVRE_COMPTES: (
        "grand",
        "livre",
        "livres",
        "compte",
        "comptes",
        "gl",
        "glcompte",
        "glcomptes",
        "grandlivre",
        "grandlivrecompte",
        "grandlivrecomptes",
    ),
    FileType.GRAND_LIVRE_TIERS: (
        "grand",
        "livre",
        "livres",
        "tiers",
        "tier",
        "gl",
        "gltiers",
        "gltier",
        "grandlivretiers",
        "grandlivretier",
    ),
    FileType.PLAN_COMPTES: (
        "plan",
        "compte",
        "comptes",
        "cmpt",
        "pl",
        "plcompte",
        "plcomptes",
        "plancompte",
        "plancomptes",
    ),
    FileType.PLAN_TIERS: (
        "plan",
        "tiers",
        "tier",
        "trs",
        "pl",
        "pltiers",
        "pltier",
        "plantiers",
        "plantier",
    ),
    FileType.CODE_JOURNAL: (
        "code",
        "journal",
        "journaux",
        "journeau",
        "cd",
        "cj",
        "codejournal",
        "codejournaux",
        "cdjournal",
    ),
}


def normalize_filename(filename: str) -> str:
    return _SEPARATORS.sub(" ", (filename or "").lower()).strip()


def score_file_type(filename: str, file_type: FileType) -> int:
    """Sum the length of every keyword of ``file_type`` contained in the filename.

    Longer keywords weigh more so that ``plantiers`` beats a lone ``tiers``.
    """

    normalized = normalize_filename(filename)
    return sum(len(word) for word in KEYWORDS[file_type] if word in normalized)


def detect_file_type(filename: str) -> Optional[FileType]:
    """Return the best scoring category, or ``None`` when no keyword matches.

    Ties go to the category listed first in ``KEYWORDS``.
    """

    best_type: Optional[FileType] = None
    best_score = 0
    for file_type in KEYWORDS:
        score = score_file_type(filename, file_type)
        if score > best_score:
            best_type, best_score = file_type, score
    return best_type


__all__ = ["KEYWORDS", "normalize_filename", "score_file_type", "detect_file_type"]
