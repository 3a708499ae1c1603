from datetime import date

from supplier_core.comparison import compare_years, normalize_years, presence_summary, vendor_rows

from conftest import make_record


def test_vendor_absent_in_second_year():
    records = [make_record("A", po_date=date(2023, 4, 1)), make_record("B", po_date=date(2024, 2, 1))]
    result = compare_years(records, [2023, 2024])
    assert result.vendor_presence["A"] == {2023: True, 2024: False}
    assert result.vendor_presence["B"] == {2023: False, 2024: True}


def test_years_without_records_are_zero_filled():
    records = [make_record("A", unit="U1", po_date=date(2023, 4, 1))]
    result = compare_years(records, [2021, 2022, 2023])
    assert result.vendor_presence["A"] == {2021: False, 2022: False, 2023: True}
    assert result.unit_counts_by_year["U1"] == {2021: 0, 2022: 0, 2023: 1}


def test_unit_counts_are_raw_row_counts():
    records = [
        make_record("A", unit="U1", po_date=date(2023, 1, 1)),
        make_record("A", unit="U1", po_date=date(2023, 6, 1)),
        make_record("B", unit="U1", po_date=date(2024, 6, 1)),
        make_record("C", unit="U2", po_date=date(2025, 6, 1)),
    ]
    result = compare_years(records, [2023, 2024])
    assert result.unit_counts_by_year == {"U1": {2023: 2, 2024: 1}, "U2": {2023: 0, 2024: 0}}
    # out-of-range records still register their vendor with all-False presence
    assert result.vendor_presence["C"] == {2023: False, 2024: False}


def test_explicit_year_field_overrides_date_year():
    record = make_record("A", po_date=date(2023, 12, 31), year=2024)
    result = compare_years([record], [2023, 2024])
    assert result.vendor_presence["A"] == {2023: False, 2024: True}


def test_blank_vendor_names_are_skipped_and_names_trimmed():
    records = [make_record("  "), make_record(" Alpha ")]
    result = compare_years(records, [2023])
    assert list(result.vendor_presence) == ["Alpha"]


def test_missing_unit_uses_empty_key():
    result = compare_years([make_record(unit=None)], [2023])
    assert result.unit_counts_by_year == {"": {2023: 1}}


def test_normalize_years_dedupes_sorts_and_drops_junk():
    assert normalize_years(["2024", 2023, "x", None, 2024]) == (2023, 2024)


def test_to_dict_uses_string_year_keys_and_summary():
    records = [
        make_record("A", po_date=date(2023, 1, 1)),
        make_record("B", po_date=date(2023, 1, 1)),
        make_record("B", po_date=date(2024, 1, 1)),
        make_record("C", po_date=date(2024, 1, 1)),
        make_record("D", po_date=date(2024, 1, 1)),
    ]
    payload = compare_years(records, [2024, 2023]).to_dict()
    assert payload["years"] == [2023, 2024]
    assert payload["vendorPresence"]["A"] == {"2023": True, "2024": False}
    assert payload["summary"] == {
        "baseYear": 2023,
        "compareYear": 2024,
        "baseYearVendors": 2,
        "compareYearVendors": 3,
        "totalVendors": 3,
        "sameVendors": 1,
        "vendorsLost": 1,
        "vendorsNew": 2,
    }


def test_to_dict_limits_and_no_summary_for_three_years():
    records = [make_record(f"V{i}", unit=f"U{i}") for i in range(5)]
    payload = compare_years(records, [2021, 2022, 2023]).to_dict(vendor_limit=2, unit_limit=3)
    assert list(payload["vendorPresence"]) == ["V0", "V1"]
    assert len(payload["unitCountsByYear"]) == 3
    assert "summary" not in payload


def test_presence_summary_for_arbitrary_pair():
    records = [make_record("A", po_date=date(2021, 1, 1)), make_record("A", po_date=date(2025, 1, 1))]
    result = compare_years(records, [2021, 2023, 2025])
    assert presence_summary(result, 2021, 2025)["sameVendors"] == 1
    assert presence_summary(result, 2021, 2023)["vendorsLost"] == 1


def test_vendor_rows_flatten_presence():
    result = compare_years([make_record("A", po_date=date(2023, 1, 1))], [2023, 2024])
    assert vendor_rows(result) == [{"name": "A", "2023": True, "2024": False}]
