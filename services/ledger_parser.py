"""Ledger ("Margin Analysis") parsing and display-name matching.

The ledger is the master-truth financial sheet. It holds either flat rows
(one display per row) or grouped blocks:

    Main Scoreboard                      <- label-only block header
    LED Display      1000  ...  1333     <- line items
    Structure         200  ...   267
    TOTAL            1200  ...  1600     <- block totals (optional)

A block ends at its TOTAL row, a blank row or the next block header. Without
a TOTAL row its totals are the sums of its items.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import structlog

from services.import_schema import cell_at
from utils.money import ZERO, coerce_number, round_to_cents, to_decimal

logger = structlog.get_logger(__name__)

# Zero-based ledger columns
LEDGER_COLUMNS: Dict[str, int] = {
    "label": 0,          # A
    "cost": 1,           # B
    "margin_pct": 3,     # D
    "margin_amount": 4,  # E
    "sell_price": 5,     # F
    "bond": 6,           # G
    "final_total": 7,    # H
}

AMOUNT_FIELDS = ("cost", "margin_amount", "sell_price", "bond", "final_total")
VALUE_FIELDS = ("cost", "margin_pct") + AMOUNT_FIELDS[1:]

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class MirrorLineItem:
    """One line item inside a ledger block."""

    label: str
    row_index: int
    cost: Decimal = ZERO
    sell_price: Decimal = ZERO


@dataclass
class LedgerEntry:
    """A display's authoritative financial figures from the ledger."""

    label: str
    row_index: int
    cost: Decimal = ZERO
    margin_pct: Optional[Decimal] = None
    margin_amount: Decimal = ZERO
    sell_price: Decimal = ZERO
    bond: Decimal = ZERO
    final_total: Decimal = ZERO
    items: List[MirrorLineItem] = field(default_factory=list)
    has_total_row: bool = False

    @property
    def is_block(self) -> bool:
        return bool(self.items)

    @property
    def item_sell_sum(self) -> Decimal:
        return round_to_cents(sum((item.sell_price for item in self.items), ZERO))

    def authored_values(self) -> Dict[str, Decimal]:
        """Non-zero ledger amounts keyed by breakdown field name."""
        mapping = {
            "total_cost": self.cost,
            "sell_price": self.sell_price,
            "bond_cost": self.bond,
            "final_client_total": self.final_total,
        }
        return {name: value for name, value in mapping.items() if value != ZERO}


def normalize_name(value: Any) -> str:
    """Lower-case and collapse whitespace for fuzzy name comparison."""
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip().lower()


def margin_ratio(value: Any) -> Optional[Decimal]:
    """Margin cell as a fraction; whole-number percents (25) become 0.25."""
    number = to_decimal(coerce_number(value))
    if number == ZERO:
        return None
    if abs(number) > 1:
        number = number / 100
    return number


def _is_total_label(label: str) -> bool:
    return "TOTAL" in label.upper()


def _is_column_header(row: Sequence[Any]) -> bool:
    """A row whose value cells hold text but no numbers (e.g. "Cost", "Margin %")."""
    texts = 0
    for name in VALUE_FIELDS:
        cell = cell_at(row, LEDGER_COLUMNS[name])
        if isinstance(cell, str) and cell.strip():
            if coerce_number(cell) != 0:
                return False
            texts += 1
        elif cell not in (None, "") and coerce_number(cell) != 0:
            return False
    return texts > 0


def _amounts(row: Sequence[Any]) -> Dict[str, Decimal]:
    return {
        name: round_to_cents(coerce_number(cell_at(row, LEDGER_COLUMNS[name])))
        for name in AMOUNT_FIELDS
    }


def _close_block(block: LedgerEntry, entries: List[LedgerEntry]) -> None:
    if not block.items:
        return
    if not block.has_total_row:
        block.cost = round_to_cents(sum((i.cost for i in block.items), ZERO))
        block.sell_price = block.item_sell_sum
        block.margin_amount = round_to_cents(block.sell_price - block.cost)
        if block.sell_price > ZERO and block.margin_pct is None:
            block.margin_pct = block.margin_amount / block.sell_price
    entries.append(block)


def parse_ledger(rows: Sequence[Sequence[Any]]) -> List[LedgerEntry]:
    """Parse ledger rows into flat and block entries, in sheet order.

    Args:
        rows: Sheet rows as value sequences (row 0 = sheet row 1).

    Returns:
        LedgerEntry list. Rows labelled TOTAL outside a block (grand totals)
        and column-header rows are ignored; blocks with no items are dropped.
    """
    entries: List[LedgerEntry] = []
    block: Optional[LedgerEntry] = None

    for index, row in enumerate(rows):
        raw_label = cell_at(row, LEDGER_COLUMNS["label"])
        label = str(raw_label).strip() if raw_label is not None else ""
        sheet_row = index + 1

        if not label:
            if block is not None:
                _close_block(block, entries)
                block = None
            continue
        if _is_column_header(row):
            # A title row directly above column headers is not a block
            if block is not None:
                _close_block(block, entries)
                block = None
            continue

        amounts = _amounts(row)
        margin_pct = margin_ratio(cell_at(row, LEDGER_COLUMNS["margin_pct"]))
        has_values = any(v != ZERO for v in amounts.values()) or margin_pct is not None

        if _is_total_label(label):
            if block is not None:
                block.cost = amounts["cost"]
                block.margin_amount = amounts["margin_amount"]
                block.sell_price = amounts["sell_price"]
                block.bond = amounts["bond"]
                block.final_total = amounts["final_total"]
                block.margin_pct = margin_pct
                block.has_total_row = True
                _close_block(block, entries)
                block = None
            continue

        if not has_values:
            if block is not None:
                _close_block(block, entries)
            block = LedgerEntry(label=label, row_index=sheet_row)
            continue

        if block is not None:
            block.items.append(
                MirrorLineItem(
                    label=label,
                    row_index=sheet_row,
                    cost=amounts["cost"],
                    sell_price=amounts["sell_price"],
                )
            )
            continue

        entries.append(
            LedgerEntry(
                label=label,
                row_index=sheet_row,
                cost=amounts["cost"],
                margin_pct=margin_pct,
                margin_amount=amounts["margin_amount"],
                sell_price=amounts["sell_price"],
                bond=amounts["bond"],
                final_total=amounts["final_total"],
            )
        )

    if block is not None:
        _close_block(block, entries)

    logger.debug("ledger_parsed", entries=len(entries),
                 blocks=sum(1 for e in entries if e.is_block))
    return entries


def match_ledger_entry(
    display_name: str,
    entries: Sequence[LedgerEntry],
    min_match_length: int = 4,
) -> Optional[LedgerEntry]:
    """Find the ledger entry for a display by fuzzy name.

    Names match when either normalized name contains the other. The score
    is the length of the shorter (contained) name; the longest match wins,
    first in sheet order on ties. Scores below `min_match_length` are
    rejected as too weak.
    """
    target = normalize_name(display_name)
    if not target:
        return None

    best: Optional[LedgerEntry] = None
    best_score = 0
    for entry in entries:
        candidate = normalize_name(entry.label)
        if not candidate:
            continue
        if candidate in target or target in candidate:
            score = min(len(candidate), len(target))
            if score > best_score:
                best, best_score = entry, score

    if best is None or best_score < min_match_length:
        return None
    return best
