"""Command line entry-point to read the period of one or two ledger exports."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from ..services.errors import ComptableError
from ..services.period_extraction import ExtractedPeriod, extract_period
from ..services.period_reconciliation import reconcile_ledger_periods

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Affiche la période d'un grand livre ou vérifie que le grand livre des "
            "comptes et celui des tiers couvrent la même période."
        )
    )
    parser.add_argument(
        "ledgers",
        nargs="+",
        type=Path,
        metavar="LEDGER",
        help="Grand livre des comptes, puis éventuellement grand livre des tiers (.xls/.xlsx).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Affiche le résultat au format JSON.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Affiche des informations supplémentaires pour le débogage.",
    )
    args = parser.parse_args(argv)
    if len(args.ledgers) > 2:
        parser.error("au plus deux grands livres peuvent être comparés")
    return args


def _read(path: Path) -> ExtractedPeriod:
    LOGGER.debug("Reading %s", path)
    return extract_period(path.read_bytes())


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    try:
        periods = [_read(path) for path in args.ledgers]
        period = periods[0] if len(periods) == 1 else reconcile_ledger_periods(*periods)
    except OSError as exc:
        LOGGER.error("Unable to read ledger: %s", exc)
        return 1
    except ComptableError as exc:
        LOGGER.error("%s", exc.message)
        if exc.context:
            LOGGER.error("%s", json.dumps(exc.context, ensure_ascii=False))
        return 1

    if args.json:
        print(json.dumps({**period.as_dict(), "folder": f"periode-{period.folder_token}"}))
    else:
        print(f"Période du {period}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
