"""
Receipt table normalization.

Source tables arrive with anything from four to nine-plus pipe-delimited cells per row. Each
supported shape is a ``RowShape`` (predicate on the cell count + mapper to the canonical nine
fields); ``ROW_SHAPES`` is evaluated top-down and the first match wins. Shared post-processing
then rejects summary rows, repairs transposed date/product columns and normalizes amounts.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from reimburse_audit.core.values import INCLUDED_IN_TOTAL, is_date_like, money, normalize_money

DEFAULT_CATEGORY = "Uncategorized"

RECEIPT_TABLE_COLUMNS = (
    "Receipt #",
    "Unique ID / Fallback",
    "Store Name",
    "Date & Time",
    "Product (Per Item)",
    "Category",
    "Item Amount",
    "Receipt Total",
    "Notes",
)
RECEIPT_TABLE_HEADER = "| " + " | ".join(RECEIPT_TABLE_COLUMNS) + " |"

_SUMMARY_LABEL_RE = re.compile(r"total|grand", re.I)
_EMBEDDED_DATE_RE = re.compile(
    r"(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}(?:\s+\d{1,2}:\d{2}(?:\s*[AP]M)?)?)", re.I
)
_HEADER_MARKERS = ("Receipt #", "Unique ID", "Store Name")


@dataclass(frozen=True)
class NormalizedReceiptRow:
    receipt_num: str
    unique_id: str
    store_name: str
    date_time: str
    product: str
    category: str
    item_amount: str
    receipt_total: str
    notes: str = ""

    @property
    def item_included_in_total(self) -> bool:
        return self.item_amount.lower() == INCLUDED_IN_TOTAL.lower()

    @property
    def line_amount(self) -> Decimal:
        """Amount this row contributes: its own item amount, else the receipt total."""
        if self.item_included_in_total:
            return money(self.receipt_total)
        return money(self.item_amount)


@dataclass(frozen=True)
class RowFallbacks:
    total: str = "0.00"
    store: str = ""
    uid: str = ""


@dataclass(frozen=True)
class RowShape:
    name: str
    matches: Callable[[int], bool]
    build: Callable[[Sequence[str], RowFallbacks], NormalizedReceiptRow]


def _cell(cells: Sequence[str], idx: int, default: str = "") -> str:
    if idx < len(cells) and cells[idx]:
        return cells[idx]
    return default


def _full_row(cells: Sequence[str], fb: RowFallbacks) -> NormalizedReceiptRow:
    return NormalizedReceiptRow(
        receipt_num=_cell(cells, 0),
        unique_id=_cell(cells, 1),
        store_name=_cell(cells, 2),
        date_time=_cell(cells, 3),
        product=_cell(cells, 4),
        category=_cell(cells, 5, DEFAULT_CATEGORY),
        item_amount=_cell(cells, 6, INCLUDED_IN_TOTAL),
        receipt_total=_cell(cells, 7, fb.total),
        notes=_cell(cells, 8),
    )


def _row_without_notes(cells: Sequence[str], fb: RowFallbacks) -> NormalizedReceiptRow:
    return NormalizedReceiptRow(
        receipt_num=_cell(cells, 0),
        unique_id=_cell(cells, 1, fb.uid),
        store_name=_cell(cells, 2, fb.store),
        date_time=_cell(cells, 3),
        product=_cell(cells, 4),
        category=_cell(cells, 5, DEFAULT_CATEGORY),
        item_amount=_cell(cells, 6, INCLUDED_IN_TOTAL),
        receipt_total=_cell(cells, 7, fb.total),
    )


def _row_store_with_date(cells: Sequence[str], fb: RowFallbacks) -> NormalizedReceiptRow:
    store_and_time = _cell(cells, 1)
    m = _EMBEDDED_DATE_RE.search(store_and_time)
    if m:
        store_name = store_and_time.replace(m.group(1), "").strip()
        date_time = m.group(1).strip()
    else:
        store_name = store_and_time or fb.store
        date_time = ""
    return NormalizedReceiptRow(
        receipt_num=_cell(cells, 0),
        unique_id=fb.uid,
        store_name=store_name,
        date_time=date_time,
        product=_cell(cells, 2),
        category=_cell(cells, 3, DEFAULT_CATEGORY),
        item_amount=_cell(cells, 4, INCLUDED_IN_TOTAL),
        receipt_total=_cell(cells, 5, fb.total),
    )


def _row_store_date_product_total(cells: Sequence[str], fb: RowFallbacks) -> NormalizedReceiptRow:
    return NormalizedReceiptRow(
        receipt_num=_cell(cells, 0),
        unique_id=fb.uid,
        store_name=_cell(cells, 1, fb.store),
        date_time=_cell(cells, 2),
        product=_cell(cells, 3),
        category=DEFAULT_CATEGORY,
        item_amount=INCLUDED_IN_TOTAL,
        receipt_total=_cell(cells, 4, fb.total),
    )


def _row_date_product_total(cells: Sequence[str], fb: RowFallbacks) -> NormalizedReceiptRow:
    return NormalizedReceiptRow(
        receipt_num=_cell(cells, 0),
        unique_id=fb.uid,
        store_name=fb.store,
        date_time=_cell(cells, 1),
        product=_cell(cells, 2),
        category=DEFAULT_CATEGORY,
        item_amount=INCLUDED_IN_TOTAL,
        receipt_total=_cell(cells, 3, fb.total),
    )


ROW_SHAPES: tuple[RowShape, ...] = (
    RowShape("full", lambda n: n >= 9, _full_row),
    RowShape("no_notes", lambda n: n == 8, _row_without_notes),
    RowShape("store_with_date", lambda n: n in (6, 7), _row_store_with_date),
    RowShape("store_date_product_total", lambda n: n == 5, _row_store_date_product_total),
    RowShape("date_product_total", lambda n: n == 4, _row_date_product_total),
)


def select_shape(cell_count: int) -> RowShape | None:
    for shape in ROW_SHAPES:
        if shape.matches(cell_count):
            return shape
    return None


def normalize_receipt_row(
    cells: Sequence[str],
    *,
    fallback_total: str = "0.00",
    fallback_store: str = "",
    fallback_uid: str = "",
) -> NormalizedReceiptRow | None:
    shape = select_shape(len(cells))
    if shape is None:
        return None

    fb = RowFallbacks(total=fallback_total, store=fallback_store, uid=fallback_uid)
    row = shape.build(cells, fb)

    if not row.receipt_num or _SUMMARY_LABEL_RE.search(row.receipt_num):
        return None

    if not is_date_like(row.date_time) and is_date_like(row.product):
        row = replace(row, date_time=row.product, product=row.date_time)

    receipt_total = normalize_money(row.receipt_total, normalize_money(fallback_total))
    item_amount = row.item_amount
    if not row.item_included_in_total:
        item_amount = normalize_money(item_amount, normalize_money(row.receipt_total))

    return replace(
        row,
        item_amount=item_amount,
        receipt_total=receipt_total,
        store_name=row.store_name or fallback_store,
        unique_id=row.unique_id or fallback_uid,
    )


def split_cells(line: str) -> list[str]:
    return [cell.strip() for cell in line.strip().split("|") if cell.strip()]


def is_separator(line: str) -> bool:
    return "---" in line


def is_receipt_header(line: str) -> bool:
    return any(marker in line for marker in _HEADER_MARKERS)


@dataclass(frozen=True)
class ReceiptTable:
    rows: list[NormalizedReceiptRow]
    grand_total: Decimal | None
    has_header: bool


def parse_receipt_table(
    text: str | None,
    *,
    fallback_total: str = "0.00",
    fallback_store: str = "",
    uid_fallbacks: Sequence[str] = (),
    default_uid: str = "",
    header_required: bool = False,
) -> ReceiptTable:
    """
    Collect canonical rows from every pipe-delimited line of ``text``.

    With ``header_required`` only lines following a nine-column receipt header are read, up to
    the first blank line. ``uid_fallbacks`` are consumed in order, one per accepted row.
    """
    rows: list[NormalizedReceiptRow] = []
    grand_total: Decimal | None = None
    has_header = False
    in_table = not header_required

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            if header_required:
                in_table = False
            continue
        if not line.startswith("|"):
            continue
        if is_receipt_header(line):
            has_header = True
            in_table = True
            continue
        if not in_table or is_separator(line):
            continue

        cells = split_cells(line)
        if cells and "grand total" in cells[0].lower():
            numeric = [c for c in reversed(cells) if re.search(r"\d", c)]
            if numeric:
                grand_total = money(numeric[0])
            continue

        idx = len(rows)
        fallback_uid = uid_fallbacks[idx] if idx < len(uid_fallbacks) else default_uid
        row = normalize_receipt_row(
            cells,
            fallback_total=fallback_total,
            fallback_store=fallback_store,
            fallback_uid=fallback_uid,
        )
        if row is not None:
            rows.append(row)

    return ReceiptTable(rows=rows, grand_total=grand_total, has_header=has_header)
