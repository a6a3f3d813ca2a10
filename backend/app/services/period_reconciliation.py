"""Check that both ledgers of a batch describe the same accounting period."""

from __future__ import annotations

from .errors import PeriodMismatchError
from .period_extraction import ExtractedPeriod


def periods_match(first: ExtractedPeriod, second: ExtractedPeriod) -> bool:
    return first.start == second.start and first.end == second.end


def reconcile_ledger_periods(
    accounts: ExtractedPeriod, third_party: ExtractedPeriod
) -> ExtractedPeriod:
    """Return the period shared by both ledgers or raise ``PeriodMismatchError``."""

    if not periods_match(accounts, third_party):
        raise PeriodMismatchError(
            context={
                "grand_livre_comptes": accounts.as_dict(),
                "grand_livre_tiers": third_party.as_dict(),
            }
        )
    return accounts


__all__ = ["periods_match", "reconcile_ledger_periods"]
