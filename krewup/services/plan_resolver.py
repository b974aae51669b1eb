from typing import Optional

from ..domain.errors import UnknownPriceError
from ..domain.models import PlanType


class PlanResolver:
    """Maps the two configured Stripe price ids onto plan types."""

    def __init__(self, monthly_price_id: str, annual_price_id: str) -> None:
        if not monthly_price_id or not annual_price_id:
            raise ValueError("Both monthly and annual price IDs must be configured")
        if monthly_price_id == annual_price_id:
            raise ValueError("Monthly and annual price IDs must differ")
        self._plans = {
            monthly_price_id: PlanType.MONTHLY,
            annual_price_id: PlanType.ANNUAL,
        }

    def resolve(self, price_id: Optional[str]) -> PlanType:
        """Return the plan for ``price_id`` or raise ``UnknownPriceError``. Never guesses."""
        if not price_id or price_id not in self._plans:
            raise UnknownPriceError(price_id)
        return self._plans[price_id]
