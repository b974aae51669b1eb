import pytest

from krewup.domain.errors import UnknownPriceError
from krewup.domain.models import PlanType
from krewup.services.plan_resolver import PlanResolver


class TestPlanResolver:
    """Price id to plan mapping."""

    def test_resolves_both_configured_prices(self):
        resolver = PlanResolver("price_m", "price_a")

        assert resolver.resolve("price_m") is PlanType.MONTHLY
        assert resolver.resolve("price_a") is PlanType.ANNUAL

    @pytest.mark.parametrize("price_id", ["price_other", "", None])
    def test_unknown_price_raises(self, price_id):
        resolver = PlanResolver("price_m", "price_a")

        with pytest.raises(UnknownPriceError) as exc_info:
            resolver.resolve(price_id)

        assert exc_info.value.price_id == price_id

    def test_rejects_identical_price_ids(self):
        with pytest.raises(ValueError):
            PlanResolver("price_same", "price_same")

    def test_rejects_missing_price_id(self):
        with pytest.raises(ValueError):
            PlanResolver("price_m", "")
