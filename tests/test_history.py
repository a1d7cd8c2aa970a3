from decimal import Decimal

import pytest

from crawlers.core.catalog import VariantGroup
from crawlers.core.history import HistoryRecorder, color_from_stock_code, normalize_price
from tests.conftest import make_item


@pytest.fixture
def recorder(repository):
    return HistoryRecorder(repository)


@pytest.fixture
def product_id(repository):
    return repository.upsert_product(make_item(1), None).product.id


class TestPriceHistory:
    def test_first_sample_is_recorded(self, recorder, repository, product_id):
        sample = recorder.record_price(product_id, Decimal("100"), Decimal("120"), 17)

        assert sample is not None
        assert sample.price == Decimal("100.00")
        assert sample.original_price == Decimal("120.00")
        assert sample.discount_rate == 17
        assert len(repository.list_price_samples(product_id)) == 1

    def test_same_price_is_not_recorded_again(self, recorder, repository, product_id):
        recorder.record_price(product_id, Decimal("100"))

        assert recorder.record_price(product_id, Decimal("100.00")) is None
        assert recorder.record_price(product_id, Decimal("100.001")) is None
        assert len(repository.list_price_samples(product_id)) == 1

    def test_no_two_adjacent_samples_share_a_price(self, recorder, repository, product_id):
        for price in ["100", "100", "90", "90", "100"]:
            recorder.record_price(product_id, Decimal(price))

        prices = [s.price for s in repository.list_price_samples(product_id)]
        assert prices == [Decimal("100.00"), Decimal("90.00"), Decimal("100.00")]

    def test_original_price_defaults_to_price(self, recorder, product_id):
        sample = recorder.record_price(product_id, Decimal("55.5"))

        assert sample.original_price == Decimal("55.50")


class TestStockHistory:
    def test_dedups_on_stock_and_availability(self, recorder, repository, product_id):
        assert recorder.record_stock(product_id, 10, True) is not None
        assert recorder.record_stock(product_id, 10, True) is None
        assert recorder.record_stock(product_id, 10, False) is not None
        assert recorder.record_stock(product_id, 5, False) is not None

        samples = repository.list_stock_samples(product_id)
        assert [(s.total_stock, s.in_stock) for s in samples] == [(10, True), (10, False), (5, False)]

    def test_missing_stock_count_is_zero(self, recorder, product_id):
        sample = recorder.record_stock(product_id, None, False)

        assert sample.total_stock == 0


class TestVariantStock:
    def _groups(self, *sizes):
        return [VariantGroup.model_validate({
            "name": "SIYAH",
            "subVariantValues": [{"name": size, "stockAmount": amount} for size, amount in sizes],
        })]

    def test_rows_are_keyed_by_color_from_stock_code(self, recorder, repository, product_id):
        written = recorder.record_variants(
            product_id, "A41Y2087-SIYAH", self._groups(("M", 3), ("L", 0))
        )

        assert written == 2
        assert repository.list_variant_stock(product_id) == [("SIYAH", "M", 3), ("SIYAH", "L", 0)]

    def test_snapshot_is_replaced(self, recorder, repository, product_id):
        recorder.record_variants(product_id, "A41Y2087-SIYAH", self._groups(("S", 1), ("M", 2), ("L", 3)))
        recorder.record_variants(product_id, "A41Y2087-SIYAH", self._groups(("M", 7)))

        assert repository.list_variant_stock(product_id) == [("SIYAH", "M", 7)]


@pytest.mark.parametrize("stock_code, color", [
    ("A41Y2087-SIYAH", "SIYAH"),
    ("A41Y2087-LACIVERT-XL", "LACIVERT"),
    ("A41Y2087", ""),
    ("", ""),
    (None, ""),
])
def test_color_from_stock_code(stock_code, color):
    assert color_from_stock_code(stock_code) == color


def test_normalize_price():
    assert normalize_price(99.9) == Decimal("99.90")
    assert normalize_price("12.344") == Decimal("12.34")
