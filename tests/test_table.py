from __future__ import annotations

from decimal import Decimal

from reimburse_audit.modules.extraction.table import (
    DEFAULT_CATEGORY,
    normalize_receipt_row,
    parse_receipt_table,
    select_shape,
)


def test_nine_cells_map_one_to_one():
    row = normalize_receipt_row(
        ["1", "INV-1", "Coles", "12/01/2025 10:00", "Milk", "Groceries", "$4.50", "$10.00", "note"]
    )
    assert row is not None
    assert row.receipt_num == "1"
    assert row.unique_id == "INV-1"
    assert row.store_name == "Coles"
    assert row.date_time == "12/01/2025 10:00"
    assert row.product == "Milk"
    assert row.category == "Groceries"
    assert row.item_amount == "4.50"
    assert row.receipt_total == "10.00"
    assert row.notes == "note"


def test_eight_cells_fill_blank_uid_and_store_from_fallbacks():
    row = normalize_receipt_row(
        ["1", "", "", "12/01/2025", "Bread", "Groceries", "3.00", "10.00"],
        fallback_store="Store X",
        fallback_uid="U1",
    )
    assert row is not None
    assert row.unique_id == "U1"
    assert row.store_name == "Store X"
    assert row.notes == ""


def test_seven_cells_split_date_out_of_store_cell():
    row = normalize_receipt_row(
        ["1", "Coles 12/01/2025 10:00", "Milk", "Groceries", "4.50", "10.00", "extra"]
    )
    assert row is not None
    assert row.store_name == "Coles"
    assert row.date_time == "12/01/2025 10:00"
    assert row.product == "Milk"
    assert row.item_amount == "4.50"


def test_six_cells_keep_included_in_total_sentinel():
    row = normalize_receipt_row(["1", "Woolworths", "Eggs", "Groceries", "Included in total", "20"])
    assert row is not None
    assert row.store_name == "Woolworths"
    assert row.date_time == ""
    assert row.item_amount == "Included in total"
    assert row.item_included_in_total
    assert row.receipt_total == "20.00"
    assert row.line_amount == Decimal("20.00")


def test_five_cells_are_receipt_store_date_product_total():
    row = normalize_receipt_row(["2", "Aldi", "13/01/2025", "Apples", "$7.25"])
    assert row is not None
    assert row.store_name == "Aldi"
    assert row.date_time == "13/01/2025"
    assert row.product == "Apples"
    assert row.category == DEFAULT_CATEGORY
    assert row.item_amount == "Included in total"
    assert row.receipt_total == "7.25"


def test_four_cells_take_store_from_caller():
    row = normalize_receipt_row(["3", "14/01/2025", "Pears", "5"], fallback_store="Fallback")
    assert row is not None
    assert row.store_name == "Fallback"
    assert row.date_time == "14/01/2025"
    assert row.product == "Pears"
    assert row.receipt_total == "5.00"


def test_fewer_than_four_cells_are_rejected():
    assert select_shape(3) is None
    assert normalize_receipt_row(["1", "Milk", "4.00"]) is None


def test_blank_and_summary_receipt_numbers_are_rejected():
    assert normalize_receipt_row(["Total", "Coles", "12/01/2025", "-", "12.00"]) is None
    assert normalize_receipt_row(["Grand Total", "x", "y", "12.00"]) is None
    assert normalize_receipt_row(["", "Coles", "12/01/2025", "Milk", "12.00"]) is None


def test_transposed_date_and_product_are_swapped():
    row = normalize_receipt_row(["1", "Coles", "Milk", "12/01/2025", "4.00"])
    assert row is not None
    assert row.date_time == "12/01/2025"
    assert row.product == "Milk"


def test_amounts_normalize_against_row_and_caller_totals():
    row = normalize_receipt_row(["1", "U", "S", "12/01/2025", "P", "C", "abc", "9.00", "n"])
    assert row is not None
    assert row.item_amount == "9.00"

    row = normalize_receipt_row(
        ["1", "U", "S", "12/01/2025", "P", "C", "1.00", "xyz", "n"], fallback_total="5"
    )
    assert row is not None
    assert row.receipt_total == "5.00"


def test_parse_receipt_table_skips_header_and_reads_grand_total():
    text = "\n".join(
        [
            "| Receipt # | Unique ID / Fallback | Store Name | Date & Time | Product (Per Item) "
            "| Category | Item Amount | Receipt Total | Notes |",
            "| :--- | :--- | :--- | :--- | :--- | :--- | :--- | :--- | :--- |",
            "| 1 | INV-1 | Coles | 12/01/2025 | Milk | Groceries | $4.50 | $10.00 | - |",
            "| 1 | INV-1 | Coles | 12/01/2025 | Bread | Groceries | $5.50 | $10.00 | - |",
            "| **GRAND TOTAL** | | | | | | | $10.00 | |",
        ]
    )
    table = parse_receipt_table(text)
    assert table.has_header
    assert table.grand_total == Decimal("10.00")
    assert [r.product for r in table.rows] == ["Milk", "Bread"]


def test_parse_receipt_table_consumes_uid_fallbacks_in_order():
    text = "\n".join(
        [
            "intro line",
            "| Receipt # | Unique ID / Fallback | Store Name | Date & Time | Product |",
            "| --- | --- | --- | --- | --- |",
            "| 1 | Coles | 12/01/2025 | Milk | 4.00 |",
            "| 2 | Aldi | 13/01/2025 | Bread | 3.00 |",
            "| 3 | IGA | 14/01/2025 | Eggs | 6.00 |",
            "",
            "| 9 | Ignored | 15/01/2025 | Outside | 1.00 |",
        ]
    )
    table = parse_receipt_table(
        text, uid_fallbacks=["A", "B"], default_uid="DEFAULT", header_required=True
    )
    assert [r.unique_id for r in table.rows] == ["A", "B", "DEFAULT"]
