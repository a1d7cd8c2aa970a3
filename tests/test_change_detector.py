from decimal import Decimal

import pytest

from crawlers.core.change_detector import (
    StockTransition, detect_changes, is_price_changed, stock_transition
)
from tests.conftest import make_item, make_snapshot


class TestPriceTolerance:
    def test_difference_of_exactly_one_cent_is_not_a_change(self):
        assert is_price_changed(Decimal("100.00"), Decimal("99.99")) is False

    def test_difference_above_one_cent_is_a_change(self):
        assert is_price_changed(Decimal("100.00"), Decimal("99.989")) is True

    def test_no_previous_price_is_not_a_change(self):
        assert is_price_changed(None, Decimal("10")) is False


@pytest.mark.parametrize("was, now, expected", [
    (True, True, StockTransition.NONE),
    (False, False, StockTransition.NONE),
    (False, True, StockTransition.BECAME_IN_STOCK),
    (True, False, StockTransition.BECAME_OUT_OF_STOCK),
    (None, True, StockTransition.NONE),
])
def test_stock_transition(was, now, expected):
    assert stock_transition(was, now) == expected


class TestDetectChanges:
    def test_first_sighting_is_new_without_changes(self):
        changes = detect_changes(make_item(price="100"), None)

        assert changes.is_new is True
        assert changes.price_changed is False
        assert changes.old_price is None
        assert changes.stock_transition == StockTransition.NONE

    def test_price_drop(self):
        changes = detect_changes(make_item(price="80"), make_snapshot(current_price="100"))

        assert changes.price_changed is True
        assert changes.price_decreased is True
        assert changes.price_increased is False
        assert changes.price_delta == Decimal("-20")

    def test_price_increase(self):
        changes = detect_changes(make_item(price="120"), make_snapshot(current_price="100"))

        assert changes.price_increased is True
        assert changes.price_decreased is False

    def test_unchanged_item(self):
        changes = detect_changes(make_item(price="100"), make_snapshot(current_price="100"))

        assert changes.is_new is False
        assert changes.price_changed is False
        assert changes.stock_transition == StockTransition.NONE

    def test_stored_price_missing_is_not_a_change(self):
        changes = detect_changes(make_item(price="100"), make_snapshot(current_price=None))

        assert changes.price_changed is False

    def test_back_in_stock(self):
        changes = detect_changes(make_item(in_stock=True), make_snapshot(in_stock=False))

        assert changes.stock_transition == StockTransition.BECAME_IN_STOCK

    def test_discount_is_computed_from_list_price(self):
        item = make_item(price="75", productPriceOriginal="100")

        assert detect_changes(item, None).discount_percent == 25

    def test_is_deterministic(self):
        item, previous = make_item(price="90", in_stock=False), make_snapshot()

        assert detect_changes(item, previous) == detect_changes(item, previous)
