# -*- coding: utf-8 -*-
"""
tradezen.store.schema

Typed records for each collection and their fixed-width row layout in the
remote document. Column order and count are part of the document format and
never change for an existing document.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from tradezen.config import SHEETS
from tradezen.exceptions import RowValidationError

TRADES = "trades"
TAGS = "tags"
SETTINGS = "settings"


@dataclass
class Trade:
    id: str
    date: str  # YYYY-MM-DD
    time: str = ""  # HH:MM
    amount: Decimal = Decimal("0")
    tag_id: str = ""
    tag_name: str = ""
    tag_color: str = ""
    tag_emoji: str = ""
    attachment_id: Optional[str] = None
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    def in_month(self, year: int, month: int) -> bool:
        """``month`` is 1-based."""
        return self.date.startswith(f"{year:04d}-{month:02d}")


@dataclass
class Tag:
    id: str
    name: str
    color: str = ""
    emoji: str = ""
    order: int = 0


@dataclass
class Setting:
    key: str
    value: str = ""

    @property
    def id(self) -> str:
        return self.key


# --------------------------------------------------
# Cell conversion
# --------------------------------------------------
def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise RowValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    else:
        text = _cell(value).strip()
        if not text:
            return Decimal("0")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise RowValidationError(f"Invalid amount: {value!r}") from None
    if not result.is_finite():
        raise RowValidationError(f"Invalid amount: {value!r}")
    return result


def _amount_cell(amount: Decimal) -> Any:
    # Written RAW so the cell stays numeric in the sheet
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def _order(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def attachment_filename(date: str, time: str) -> str:
    time_part = time.replace(":", "-") if time else "no-time"
    return f"{date or 'no-date'}_{time_part}.jpg"


# --------------------------------------------------
# Row codecs
# --------------------------------------------------
def parse_trade_row(row: Sequence[Any]) -> Trade:
    if len(row) < 12:
        raise RowValidationError(f"Trade row has {len(row)} columns, expected 12")
    return Trade(
        id=_cell(row[0]),
        date=_cell(row[1]),
        time=_cell(row[2]),
        amount=to_decimal(row[3]),
        tag_id=_cell(row[4]),
        tag_name=_cell(row[5]),
        tag_color=_cell(row[6]),
        tag_emoji=_cell(row[7]),
        attachment_id=_cell(row[8]) or None,
        notes=_cell(row[9]),
        created_at=_cell(row[10]),
        updated_at=_cell(row[11]),
    )


def serialize_trade(trade: Trade) -> List[Any]:
    return [
        trade.id,
        trade.date,
        trade.time,
        _amount_cell(trade.amount),
        trade.tag_id,
        trade.tag_name,
        trade.tag_color,
        trade.tag_emoji,
        trade.attachment_id or "",
        trade.notes or "",
        trade.created_at,
        trade.updated_at,
    ]


def parse_tag_row(row: Sequence[Any]) -> Tag:
    if len(row) < 5:
        raise RowValidationError(f"Tag row has {len(row)} columns, expected 5")
    return Tag(
        id=_cell(row[0]),
        name=_cell(row[1]),
        color=_cell(row[2]),
        emoji=_cell(row[3]),
        order=_order(row[4]),
    )


def serialize_tag(tag: Tag) -> List[Any]:
    return [tag.id, tag.name, tag.color, tag.emoji, tag.order or 0]


def parse_setting_row(row: Sequence[Any]) -> Setting:
    # Sheets omits trailing empty cells, so an empty value arrives as a 1-column row
    if len(row) < 1 or not _cell(row[0]):
        raise RowValidationError("Setting row has no key")
    return Setting(key=_cell(row[0]), value=_cell(row[1]) if len(row) > 1 else "")


def serialize_setting(setting: Setting) -> List[Any]:
    return [setting.key, setting.value]


def column_letter(index: int) -> str:
    """1-based column index to A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(frozen=True)
class CollectionSchema:
    name: str
    tab: str
    headers: Tuple[str, ...]
    record_type: Type[Any]
    parse: Callable[[Sequence[Any]], Any]
    serialize: Callable[[Any], List[Any]]
    coercers: Dict[str, Callable[[Any], Any]] = dataclasses.field(default_factory=dict)
    sort_key: Optional[Callable[[Any], Any]] = None
    timestamped: bool = False

    @property
    def width(self) -> int:
        return len(self.headers)

    @property
    def last_column(self) -> str:
        return column_letter(self.width)

    def data_range(self) -> str:
        return f"{self.tab}!A2:{self.last_column}"

    def id_range(self) -> str:
        return f"{self.tab}!A:A"

    def append_range(self) -> str:
        return f"{self.tab}!A:{self.last_column}"

    def row_range(self, row_number: int) -> str:
        """``row_number`` is the 1-based sheet row."""
        return f"{self.tab}!A{row_number}:{self.last_column}{row_number}"

    def merge(self, existing: Any, changes: Dict[str, Any]) -> Any:
        """
        Overlay a partial update on an existing record. A key that is present
        wins even when empty or zero; absent keys keep the existing value.
        """
        allowed = {f.name for f in dataclasses.fields(self.record_type)}
        allowed -= {"id", "key", "created_at", "updated_at"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update {self.name} fields: {', '.join(sorted(unknown))}")
        coerced = {
            name: self.coercers[name](value) if name in self.coercers else value
            for name, value in changes.items()
        }
        return dataclasses.replace(existing, **coerced)


SCHEMAS: Dict[str, CollectionSchema] = {
    TRADES: CollectionSchema(
        name=TRADES,
        tab=SHEETS["TRADES"],
        headers=(
            "tradeId", "date", "time", "amount", "tagId", "tagName",
            "tagColor", "tagEmoji", "driveImageId", "notes", "createdAt", "updatedAt",
        ),
        record_type=Trade,
        parse=parse_trade_row,
        serialize=serialize_trade,
        coercers={"amount": to_decimal},
        timestamped=True,
    ),
    TAGS: CollectionSchema(
        name=TAGS,
        tab=SHEETS["TAGS"],
        headers=("tagId", "name", "color", "emoji", "order"),
        record_type=Tag,
        parse=parse_tag_row,
        serialize=serialize_tag,
        coercers={"order": _order},
        sort_key=lambda tag: tag.order,
    ),
    SETTINGS: CollectionSchema(
        name=SETTINGS,
        tab=SHEETS["SETTINGS"],
        headers=("key", "value"),
        record_type=Setting,
        parse=parse_setting_row,
        serialize=serialize_setting,
        coercers={"value": _cell},
    ),
}


def get_schema(collection: str) -> CollectionSchema:
    try:
        return SCHEMAS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None
