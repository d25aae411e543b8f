import logging
from decimal import Decimal

import pytest

from followup.services.package_catalog import CUSTOM_PACKAGE, PackageCatalog, PackageGrant


@pytest.mark.parametrize(
    "amount,credits,package_type",
    [
        (9, 3, "starter"),
        (29, 10, "business"),
        (Decimal("79.00"), 30, "pro"),
        ("29", 10, "business"),
    ],
)
def test_known_price_points(amount, credits, package_type):
    assert PackageCatalog().lookup(amount) == PackageGrant(credits=credits, package_type=package_type)


def test_unknown_amount_falls_back_to_unit_price(caplog):
    catalog = PackageCatalog(unit_price=Decimal("3"))
    with caplog.at_level(logging.WARNING, logger="followup.services.package_catalog"):
        grant = catalog.lookup(Decimal("20"))
    assert grant == PackageGrant(credits=6, package_type=CUSTOM_PACKAGE)
    assert caplog.records == []


def test_drift_is_reported_for_custom_grants_only(caplog):
    catalog = PackageCatalog(unit_price=Decimal("3"))
    with caplog.at_level(logging.WARNING, logger="followup.services.package_catalog"):
        catalog.record_drift(Decimal("29"), catalog.lookup(Decimal("29")))
        catalog.record_drift(Decimal("20"), catalog.lookup(Decimal("20")))
    messages = [rec.getMessage() for rec in caplog.records]
    assert len(messages) == 1
    assert "Unknown paid amount 20 not in price table" in messages[0]


def test_fallback_floors_fractional_credits():
    assert PackageCatalog(unit_price=Decimal("3")).lookup(Decimal("2.99")).credits == 0
    assert PackageCatalog(unit_price=Decimal("3")).lookup(Decimal("14.50")).credits == 4


def test_custom_price_table():
    catalog = PackageCatalog(price_table={Decimal("5"): PackageGrant(credits=1, package_type="single")})
    assert catalog.lookup(5).package_type == "single"
    assert catalog.lookup(29).package_type == CUSTOM_PACKAGE


def test_packages_are_sorted_by_price():
    prices = [price for price, _ in PackageCatalog().packages()]
    assert prices == [Decimal("9"), Decimal("29"), Decimal("79")]


def test_unit_price_must_be_positive():
    with pytest.raises(ValueError):
        PackageCatalog(unit_price=Decimal("0"))
