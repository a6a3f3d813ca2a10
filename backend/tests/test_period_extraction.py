from datetime import date, datetime

import pytest

from backend.app.services.errors import PeriodExtractionError
from backend.app.services.period_extraction import (
    ExtractedPeriod,
    extract_period,
    extract_period_from_rows,
)


def test_extracts_period_spread_over_three_rows():
    rows = [
        ["ACME SARL", ""],
        ["Période du 01/01/2024", ""],
        ["au", ""],
        ["31/12/2024", ""],
        ["Compte", "Solde"],
    ]

    period = extract_period_from_rows(rows)

    assert period == ExtractedPeriod(date(2024, 1, 1), date(2024, 12, 31))
    assert period.year == 2024
    assert period.folder_token == "20240101-20241231"
    assert str(period) == "01/01/2024 - 31/12/2024"


def test_start_marker_is_case_and_accent_insensitive():
    rows = [["PERIODE DU 01/04/2023"], ["AU"], ["31/03/2024"]]

    period = extract_period_from_rows(rows)

    assert period.start == date(2023, 4, 1)
    assert period.end == date(2024, 3, 31)


def test_cells_of_a_row_are_joined_before_matching():
    rows = [["Période du", "01/01/2024", ""], ["", "au", ""], ["", "30/06/2024", ""]]

    period = extract_period_from_rows(rows)

    assert period.as_dict() == {"start": "2024-01-01", "end": "2024-06-30"}


def test_later_start_marker_overrides_earlier_one():
    rows = [
        ["Période du 01/01/2023"],
        ["Période du 01/01/2024"],
        ["au"],
        ["31/12/2024"],
    ]

    assert extract_period_from_rows(rows).start == date(2024, 1, 1)


def test_end_marker_before_start_is_ignored():
    rows = [
        ["au"],
        ["31/12/2022"],
        ["Période du 01/01/2024"],
        ["au"],
        ["31/12/2024"],
    ]

    assert extract_period_from_rows(rows).end == date(2024, 12, 31)


def test_end_marker_without_following_date_keeps_searching():
    rows = [
        ["Période du 01/01/2024"],
        ["au"],
        ["Grand livre"],
        ["au"],
        ["31/12/2024"],
    ]

    assert extract_period_from_rows(rows).end == date(2024, 12, 31)


def test_native_date_cells_are_read_as_french_dates():
    rows = [["Période du", datetime(2024, 1, 1)], ["au"], [date(2024, 12, 31)]]

    period = extract_period_from_rows(rows)

    assert period.start == date(2024, 1, 1)
    assert period.end == date(2024, 12, 31)


@pytest.mark.parametrize(
    "rows",
    [
        [],
        [["Grand livre des comptes"], ["Compte", "Solde"]],
        [["Période du 01/01/2024"], ["31/12/2024"]],
        [["Période du 01/01/2024"], ["au"]],
        [["au"], ["31/12/2024"]],
    ],
)
def test_missing_bounds_raise_extraction_error(rows):
    with pytest.raises(PeriodExtractionError) as excinfo:
        extract_period_from_rows(rows)

    assert excinfo.value.message == "Impossible d'extraire la période du fichier"


def test_start_after_end_is_rejected():
    rows = [["Période du 31/12/2024"], ["au"], ["01/01/2024"]]

    with pytest.raises(PeriodExtractionError):
        extract_period_from_rows(rows)


def test_extract_period_reads_first_sheet_of_workbook(ledger_factory):
    content = ledger_factory("01/01/2024", "31/12/2024")

    period = extract_period(content)

    assert (period.start, period.end) == (date(2024, 1, 1), date(2024, 12, 31))


def test_extract_period_handles_date_typed_cells(workbook_factory):
    content = workbook_factory(
        [
            ["Période du", datetime(2024, 2, 1)],
            ["au", None],
            [datetime(2024, 2, 29), None],
        ]
    )

    period = extract_period(content)

    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))


def test_unreadable_payload_raises_extraction_error():
    with pytest.raises(PeriodExtractionError) as excinfo:
        extract_period(b"not a spreadsheet")

    assert excinfo.value.message == "Impossible de lire le fichier Excel"
