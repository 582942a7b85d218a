"""
Tests for the row layout of trades, tags and settings.

Usage:
    pytest tradezen/store/tests/test_schema.py -v
"""
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent.parent))

from tradezen.exceptions import RowValidationError
from tradezen.store.schema import (
    SETTINGS,
    TAGS,
    TRADES,
    Setting,
    Tag,
    Trade,
    attachment_filename,
    column_letter,
    get_schema,
    parse_tag_row,
    parse_trade_row,
    serialize_tag,
    serialize_trade,
    to_decimal,
    utc_timestamp,
)


@pytest.fixture
def trade():
    return Trade(
        id="tr-1",
        date="2024-03-15",
        time="09:30",
        amount=Decimal("150.25"),
        tag_id="t1",
        tag_name="Breakout",
        tag_color="#22c55e",
        tag_emoji="🚀",
        attachment_id="file-9",
        notes="clean entry",
        created_at="2024-03-15T09:31:00.000Z",
        updated_at="2024-03-15T09:31:00.000Z",
    )


# ---------------------------------------------------------------------------
# Trade rows
# ---------------------------------------------------------------------------

class TestTradeRows:

    def test_serialized_row_has_twelve_columns(self, trade):
        row = serialize_trade(trade)
        assert len(row) == 12
        assert row[0] == "tr-1"
        assert row[3] == 150.25
        assert row[8] == "file-9"

    @pytest.mark.parametrize("amount", ["0", "-50", "0.01", "-1234.56", "1000000"])
    def test_amount_survives_row(self, trade, amount):
        trade.amount = Decimal(amount)
        parsed = parse_trade_row(serialize_trade(trade))
        assert parsed.amount == Decimal(amount)
        assert parsed == trade

    def test_integral_amount_written_as_int(self, trade):
        trade.amount = Decimal("-50")
        assert serialize_trade(trade)[3] == -50
        assert isinstance(serialize_trade(trade)[3], int)

    def test_missing_attachment_round_trips_as_none(self, trade):
        trade.attachment_id = None
        row = serialize_trade(trade)
        assert row[8] == ""
        assert parse_trade_row(row).attachment_id is None

    def test_short_row_rejected(self):
        with pytest.raises(RowValidationError):
            parse_trade_row(["tr-1", "2024-03-15", "09:30", 10])

    def test_unparseable_amount_rejected(self):
        row = ["tr-1", "2024-03-15", "", "abc", "", "", "", "", "", "", "", ""]
        with pytest.raises(RowValidationError):
            parse_trade_row(row)

    def test_numeric_cells_from_sheet_are_strings(self):
        row = ["tr-1", "2024-03-15", "", 12.0, "", "", "", "", "", 42, "", ""]
        parsed = parse_trade_row(row)
        assert parsed.amount == Decimal("12")
        assert parsed.notes == "42"

    def test_in_month(self, trade):
        assert trade.in_month(2024, 3)
        assert not trade.in_month(2024, 4)
        assert not trade.in_month(2023, 3)


# ---------------------------------------------------------------------------
# Tag / setting rows
# ---------------------------------------------------------------------------

class TestTagAndSettingRows:

    def test_tag_row(self):
        tag = Tag(id="t1", name="Breakout", color="#fff", emoji="🚀", order=3)
        assert serialize_tag(tag) == ["t1", "Breakout", "#fff", "🚀", 3]
        assert parse_tag_row(serialize_tag(tag)) == tag

    def test_tag_order_falls_back_to_zero(self):
        assert parse_tag_row(["t1", "Breakout", "", "", "first"]).order == 0
        assert parse_tag_row(["t1", "Breakout", "", "", 2.0]).order == 2

    def test_short_tag_row_rejected(self):
        with pytest.raises(RowValidationError):
            parse_tag_row(["t1", "Breakout"])

    def test_setting_with_trimmed_empty_value(self):
        schema = get_schema(SETTINGS)
        assert schema.parse(["currency"]) == Setting(key="currency", value="")
        with pytest.raises(RowValidationError):
            schema.parse([])
        with pytest.raises(RowValidationError):
            schema.parse(["", "orphan value"])

    def test_setting_id_is_key(self):
        setting = Setting(key="currency", value="€")
        assert setting.id == "currency"
        schema = get_schema(SETTINGS)
        assert schema.parse(schema.serialize(setting)) == setting


# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------

class TestCollectionSchema:

    def test_ranges(self):
        trades = get_schema(TRADES)
        assert trades.data_range() == "Trades!A2:L"
        assert trades.id_range() == "Trades!A:A"
        assert trades.append_range() == "Trades!A:L"
        assert trades.row_range(7) == "Trades!A7:L7"
        assert get_schema(TAGS).data_range() == "Tags!A2:E"
        assert get_schema(SETTINGS).row_range(2) == "Settings!A2:B2"

    def test_unknown_collection(self):
        with pytest.raises(ValueError):
            get_schema("journal")

    def test_merge_keeps_absent_fields(self, trade):
        merged = get_schema(TRADES).merge(trade, {"amount": "-50"})
        assert merged.amount == Decimal("-50")
        assert merged.notes == "clean entry"
        assert merged.created_at == trade.created_at

    def test_merge_honours_explicit_empty_values(self, trade):
        merged = get_schema(TRADES).merge(trade, {"notes": "", "amount": 0, "attachment_id": None})
        assert merged.notes == ""
        assert merged.amount == Decimal("0")
        assert merged.attachment_id is None

    @pytest.mark.parametrize("field", ["id", "created_at", "updated_at", "colour"])
    def test_merge_rejects_protected_and_unknown_fields(self, trade, field):
        with pytest.raises(ValueError):
            get_schema(TRADES).merge(trade, {field: "x"})

    def test_merge_coerces_tag_order(self):
        tag = Tag(id="t1", name="Breakout", order=0)
        assert get_schema(TAGS).merge(tag, {"order": "4"}).order == 4

    def test_column_letter(self):
        assert column_letter(1) == "A"
        assert column_letter(12) == "L"
        assert column_letter(26) == "Z"
        assert column_letter(27) == "AA"


class TestHelpers:

    def test_to_decimal(self):
        assert to_decimal("") == Decimal("0")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(7) == Decimal("7")
        for bad in ("nan", "inf", True):
            with pytest.raises(RowValidationError):
                to_decimal(bad)

    def test_utc_timestamp_format(self):
        moment = datetime(2024, 3, 15, 9, 30, 5, 123456, tzinfo=timezone.utc)
        assert utc_timestamp(moment) == "2024-03-15T09:30:05.123Z"

    def test_attachment_filename(self):
        assert attachment_filename("2024-03-15", "09:30") == "2024-03-15_09-30.jpg"
        assert attachment_filename("2024-03-15", "") == "2024-03-15_no-time.jpg"
