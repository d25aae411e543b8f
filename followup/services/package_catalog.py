"""Price points: paid amount -> credit grant."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from followup import metrics
from followup.core.config import settings

logger = logging.getLogger(__name__)

CUSTOM_PACKAGE = "custom"


@dataclass(frozen=True)
class PackageGrant:
    credits: int
    package_type: str


# Must match the prices configured at the payment provider
DEFAULT_PRICE_TABLE: dict[Decimal, PackageGrant] = {
    Decimal("9"): PackageGrant(credits=3, package_type="starter"),
    Decimal("29"): PackageGrant(credits=10, package_type="business"),
    Decimal("79"): PackageGrant(credits=30, package_type="pro"),
}


class PackageCatalog:
    def __init__(
        self,
        price_table: dict[Decimal, PackageGrant] | None = None,
        unit_price: Decimal | None = None,
    ) -> None:
        self._table = {Decimal(k): v for k, v in (price_table or DEFAULT_PRICE_TABLE).items()}
        self.unit_price = Decimal(unit_price if unit_price is not None else settings.CREDIT_UNIT_PRICE)
        if self.unit_price <= 0:
            raise ValueError("unit_price must be positive")

    def lookup(self, amount_paid: Decimal | int | float | str) -> PackageGrant:
        amount = Decimal(str(amount_paid))
        grant = self._table.get(amount)
        if grant is not None:
            return grant

        credits = int((amount / self.unit_price).to_integral_value(rounding=ROUND_FLOOR))
        return PackageGrant(credits=max(credits, 0), package_type=CUSTOM_PACKAGE)

    def record_drift(self, amount_paid: Decimal | int | float | str, grant: PackageGrant) -> None:
        """Report a credited amount that fell outside the price table."""
        if grant.package_type != CUSTOM_PACKAGE:
            return
        logger.warning(
            "Unknown paid amount %s not in price table; granted %d credits as '%s' package",
            amount_paid,
            grant.credits,
            CUSTOM_PACKAGE,
        )
        metrics.catalog_drift()

    def packages(self) -> list[tuple[Decimal, PackageGrant]]:
        return sorted(self._table.items())
