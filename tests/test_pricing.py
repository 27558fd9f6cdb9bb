"""
Tests for role → price tier resolution.
"""

from decimal import Decimal

import pytest

from zkx402.core.pricing import AccessRole, PriceTable, PriceTier, default_tiers


@pytest.mark.unit
class TestPriceTable:
    """Test tier lookup."""

    def setup_method(self):
        self.prices = PriceTable()

    def test_default_prices(self):
        assert self.prices.resolve("journalist").display_price == "$1.00"
        assert self.prices.resolve("premium").display_price == "$2.50"
        assert self.prices.resolve("public").display_price == "$5.00"

    def test_unknown_and_absent_roles_pay_public(self):
        for role in (None, "", "editor", "JOURNALIST"):
            assert self.prices.resolve(role) is self.prices.public

    def test_non_string_roles_pay_public(self):
        for role in (["journalist"], {"x": 1}, 1, ("premium",)):
            assert self.prices.resolve(role) is self.prices.public

    def test_role_enum_values_resolve(self):
        assert self.prices.resolve(AccessRole.PREMIUM.value).name == "premium"

    def test_pay_routes(self):
        assert self.prices.resolve("journalist").pay_endpoint("abc") == "/pay/journalist/abc"
        assert self.prices.resolve("premium").pay_endpoint("abc") == "/pay/discount/abc"
        assert self.prices.public.pay_endpoint("abc") == "/pay/full/abc"

    def test_by_route(self):
        assert self.prices.by_route("discount").name == "premium"
        assert self.prices.by_route("full") is self.prices.public
        assert self.prices.by_route("free") is None

    def test_payment_descriptor(self):
        payment = self.prices.public.to_payment("abc")
        assert payment == {
            "price": "$5.00",
            "network": "celo-alfajores",
            "payEndpoint": "/pay/full/abc",
        }

    def test_custom_prices_and_network(self):
        prices = PriceTable(default_tiers(network="base-sepolia", journalist=Decimal("0.5")))
        tier = prices.resolve("journalist")
        assert tier.display_price == "$0.50"
        assert tier.network == "base-sepolia"

    def test_public_tier_required(self):
        with pytest.raises(ValueError):
            PriceTable([PriceTier("journalist", Decimal("1"), "celo-alfajores", "journalist")])
