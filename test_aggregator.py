"""Tests for vendor and cart totals."""

from decimal import Decimal

from cartengine.core.aggregator import Aggregator
from cartengine.models.cart import Cart
from cartengine.models.promotion import AppliedPromotion
from conftest import NOW


def _promotion(vendor_id: str, value: str) -> AppliedPromotion:
    return AppliedPromotion(
        vendor_id=vendor_id,
        code="SAVE",
        is_applicable=True,
        discount_value=value,
        discount_display=f"${value}",
    )


def test_two_vendor_cart_with_promotion(store, make_item):
    store.add_item(make_item(product_id="a-1", vendor_id="vendor-a", base_price="50"))
    store.add_item(make_item(product_id="b-1", vendor_id="vendor-b", base_price="30",
                             discount_rule={"percent_off": 10}))
    store.apply_promotion("vendor-a", _promotion("vendor-a", "5"))

    aggregator = store.aggregator()

    assert aggregator.grand_subtotal() == Decimal("80")
    assert aggregator.vendor_total("vendor-a") == Decimal("45")
    assert aggregator.vendor_total("vendor-b") == Decimal("27")
    assert aggregator.grand_total() == Decimal("72")
    assert aggregator.vendor_savings("vendor-a") == Decimal("5")
    assert aggregator.grand_savings() == Decimal("8")
    assert aggregator.grand_discount_total() == Decimal("3")
    assert aggregator.grand_promotion_discount() == Decimal("5")


def test_promotion_only_affects_its_vendor(store, make_item):
    store.add_item(make_item(product_id="a-1", vendor_id="vendor-a", base_price="50"))
    store.add_item(make_item(product_id="b-1", vendor_id="vendor-b", base_price="30"))
    before_b = store.aggregator().vendor_total("vendor-b")

    store.apply_promotion("vendor-a", _promotion("vendor-a", "10"))

    aggregator = store.aggregator()
    assert aggregator.vendor_total("vendor-b") == before_b
    assert aggregator.vendor_promotion_discount("vendor-b") == Decimal("0")


def test_vendor_total_floors_at_zero(make_item):
    cart = Cart()
    cart.add_item(make_item(product_id="a-1", vendor_id="vendor-a", base_price="10", deal_shorthand="$5"), NOW)
    cart.add_item(make_item(product_id="b-1", vendor_id="vendor-b", base_price="20"), NOW)
    cart.apply_promotion("vendor-a", _promotion("vendor-a", "8"))

    aggregator = Aggregator(cart)

    assert aggregator.vendor_total("vendor-a") == Decimal("0")
    # The leftover on vendor-a must not eat into vendor-b
    assert aggregator.grand_total() == Decimal("20")
    assert aggregator.grand_savings() == Decimal("10")


def test_non_applicable_promotion_is_ignored(make_item):
    cart = Cart()
    cart.add_item(make_item(), NOW)
    cart.apply_promotion("vendor-a", AppliedPromotion.rejected("vendor-a", "NOPE", "Promotion code is invalid or expired."))

    assert Aggregator(cart).vendor_total("vendor-a") == Decimal("20")


def test_counts_and_grouping_order(store, make_item):
    store.add_item(make_item(product_id="b-1", vendor_id="vendor-b", quantity=2))
    store.add_item(make_item(product_id="a-1", vendor_id="vendor-a"))
    store.add_item(make_item(product_id="b-2", vendor_id="vendor-b", quantity=3))

    aggregator = store.aggregator()
    groups = aggregator.vendor_groups()

    assert [g.vendor_id for g in groups] == ["vendor-b", "vendor-a"]
    assert [len(g.items) for g in groups] == [2, 1]
    assert aggregator.item_count() == 6
    assert aggregator.vendor_count() == 2


def test_grand_totals_are_sums_of_vendor_totals(store, make_item):
    store.add_item(make_item(product_id="a-1", vendor_id="vendor-a", base_price="19.99", quantity=3,
                             deal_shorthand="15%"))
    store.add_item(make_item(product_id="b-1", vendor_id="vendor-b", base_price="7.25",
                             discount_rule={"amount_off": "1.10"}))
    store.apply_promotion("vendor-b", _promotion("vendor-b", "2.50"))

    aggregator = store.aggregator()
    vendors = [g.vendor_id for g in aggregator.vendor_groups()]

    assert aggregator.grand_total() == sum(aggregator.vendor_total(v) for v in vendors)
    assert aggregator.grand_subtotal() == sum(aggregator.vendor_subtotal(v) for v in vendors)
    assert aggregator.grand_total() <= aggregator.grand_subtotal()


def test_summary_is_rounded_to_cents(store, make_item):
    store.add_item(make_item(base_price="9.99", deal_shorthand="15%", quantity=3))

    summary = store.aggregator().summary()

    # 9.99 * 15% = 1.4985 per unit, 4.4955 for the line
    assert summary.subtotal == Decimal("29.97")
    assert summary.savings == Decimal("4.50")
    assert summary.total == Decimal("25.47")
    assert summary.lines[0].unit_discount == Decimal("1.50")
    assert summary.lines[0].discount_source == "deal"
    assert summary.vendors[0].promotion_code is None
    assert summary.item_count == 3


def test_empty_cart():
    aggregator = Aggregator(Cart())

    assert aggregator.grand_total() == Decimal("0")
    assert aggregator.item_count() == 0
    assert aggregator.vendor_count() == 0
    assert aggregator.vendor_groups() == []


def test_summary_totals_add_up_from_vendor_rows(make_item):
    cart = Cart()
    cart.add_item(make_item(product_id="a-1", vendor_id="vendor-a", base_price="0.25", deal_shorthand="10%"), NOW)
    cart.add_item(make_item(product_id="b-1", vendor_id="vendor-b", base_price="0.25", deal_shorthand="10%"), NOW)

    summary = Aggregator(cart).summary()

    # Each vendor pays 0.225, shown as 0.23
    assert [v.total for v in summary.vendors] == [Decimal("0.23"), Decimal("0.23")]
    assert summary.total == sum(v.total for v in summary.vendors) == Decimal("0.46")
    assert summary.savings == sum(v.savings for v in summary.vendors) == Decimal("0.04")
    assert summary.subtotal == Decimal("0.50")
