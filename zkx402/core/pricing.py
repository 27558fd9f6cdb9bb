"""
Price tiers for role-based access.

Every role resolves to exactly one tier. There is no free tier and no failure
path: an unknown or absent role costs the public price.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional


class AccessRole(str, Enum):
    """Roles a credential may assert."""
    JOURNALIST = "journalist"
    PREMIUM = "premium"
    PUBLIC = "public"


@dataclass(frozen=True)
class PriceTier:
    """A named price bracket and the route that collects it."""
    name: str
    price: Decimal
    network: str
    pay_route: str
    description: str = ""

    @property
    def display_price(self) -> str:
        return f"${self.price:.2f}"

    def pay_endpoint(self, content_id: str) -> str:
        return f"/pay/{self.pay_route}/{content_id}"

    def to_payment(self, content_id: str) -> Dict[str, str]:
        return {
            "price": self.display_price,
            "network": self.network,
            "payEndpoint": self.pay_endpoint(content_id),
        }


DEFAULT_NETWORK = "celo-alfajores"


def default_tiers(
    network: str = DEFAULT_NETWORK,
    journalist: Decimal = Decimal("1.00"),
    premium: Decimal = Decimal("2.50"),
    public: Decimal = Decimal("5.00"),
) -> List[PriceTier]:
    return [
        PriceTier(AccessRole.JOURNALIST.value, journalist, network, "journalist",
                  "Pay journalist price"),
        PriceTier(AccessRole.PREMIUM.value, premium, network, "discount",
                  "Pay premium price"),
        PriceTier(AccessRole.PUBLIC.value, public, network, "full",
                  "Pay full public price"),
    ]


class PriceTable:
    """
    Role → tier mapping.

    Args:
        tiers: Tier definitions; must include one named "public"
    """

    def __init__(self, tiers: Optional[Iterable[PriceTier]] = None):
        tiers = list(tiers) if tiers is not None else default_tiers()
        self._by_name = {tier.name: tier for tier in tiers}
        self._by_route = {tier.pay_route: tier for tier in tiers}

        if AccessRole.PUBLIC.value not in self._by_name:
            raise ValueError("Price table requires a 'public' tier")

    @property
    def public(self) -> PriceTier:
        return self._by_name[AccessRole.PUBLIC.value]

    @property
    def tiers(self) -> List[PriceTier]:
        return list(self._by_name.values())

    def resolve(self, role: Optional[str]) -> PriceTier:
        """Map a role to its tier; unknown or absent roles pay the public price."""
        if not role or not isinstance(role, str):
            return self.public
        return self._by_name.get(role, self.public)

    def by_route(self, pay_route: str) -> Optional[PriceTier]:
        """Tier collected by a pay route slug, or None."""
        return self._by_route.get(pay_route)
