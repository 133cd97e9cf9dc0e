"""Tests for order totals."""
from decimal import Decimal

from storefront.domain import CartItem
from storefront.pricing import build_order_summary, summarize, to_minor_units, to_money


class TestSummarize:
    def test_free_shipping_above_threshold(self):
        summary = summarize(Decimal("60.00"))
        assert summary.shipping == Decimal("0.00")
        assert summary.tax == Decimal("4.80")
        assert summary.total == Decimal("64.80")

    def test_shipping_fee_below_threshold(self):
        summary = summarize(Decimal("40.00"))
        assert summary.shipping == Decimal("9.99")
        assert summary.tax == Decimal("3.20")
        assert summary.total == Decimal("53.19")

    def test_threshold_itself_is_not_free(self):
        assert summarize(Decimal("50.00")).shipping == Decimal("9.99")

    def test_tax_rounded_to_cents(self):
        # 12.34 * 0.08 = 0.9872
        assert summarize(Decimal("12.34")).tax == Decimal("0.99")


class TestMoney:
    def test_to_money_quantizes(self):
        assert to_money("1.005") == Decimal("1.01")
        assert to_money(3) == Decimal("3.00")

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("64.80")) == 6480
        assert to_minor_units("53.19") == 5319


class TestBuildOrderSummary:
    def test_summary_from_cart_items(self):
        items = [
            CartItem(id="i1", product_id="p1", name="Mug", price=Decimal("12.50"), quantity=2),
            CartItem(id="i2", product_id="p2", name="Tote", price=Decimal("35.00"), quantity=1),
        ]
        summary = build_order_summary(items)

        assert summary.subtotal == Decimal("60.00")
        assert summary.total == Decimal("64.80")
        assert [i.product_id for i in summary.items] == ["p1", "p2"]
        assert summary.items[0].quantity == 2

    def test_empty_cart(self):
        summary = build_order_summary([])
        assert summary.subtotal == Decimal("0.00")
        assert summary.items == []
