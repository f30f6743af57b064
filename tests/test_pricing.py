from decimal import Decimal

from storefront_orders.services import pricing


def test_free_shipping_at_threshold() -> None:
    totals = pricing.calculate(Decimal("100.00"))

    assert totals.subtotal == Decimal("100.00")
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.tax == Decimal("10.00")
    assert totals.total == Decimal("110.00")


def test_flat_shipping_below_threshold() -> None:
    totals = pricing.calculate(Decimal("99.99"))

    assert totals.shipping_cost == Decimal("10.00")
    assert totals.tax == Decimal("10.00")
    assert totals.total == Decimal("119.99")


def test_free_shipping_uses_pre_discount_subtotal() -> None:
    totals = pricing.calculate(Decimal("100.00"), discount=Decimal("50.00"))

    assert totals.shipping_cost == Decimal("0.00")
    assert totals.tax == Decimal("5.00")
    assert totals.discount == Decimal("50.00")
    assert totals.total == Decimal("55.00")


def test_tax_rounds_half_up_to_cents() -> None:
    # 10% of 0.25 is 0.025
    totals = pricing.calculate(Decimal("0.25"))

    assert totals.tax == Decimal("0.03")
    assert totals.total == Decimal("10.28")


def test_custom_rules() -> None:
    totals = pricing.calculate(
        "40", tax_rate="0.0825", shipping_flat="4.99", free_shipping_threshold="35"
    )

    assert totals.tax == Decimal("3.30")
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.total == Decimal("43.30")


def test_line_total_avoids_float_drift() -> None:
    assert pricing.line_total(0.1, 3) == Decimal("0.30")
    assert pricing.line_total(Decimal("19.99"), 3) == Decimal("59.97")
