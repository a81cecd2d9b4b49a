from dataclasses import dataclass
from typing import Optional

DEFAULT_CREDITS = 10    # granted to every lazily created user


@dataclass(frozen=True)
class CreditPackage:
    id: str
    name: str
    price: int
    credits: int
    description: str
    popular: bool = False


CREDIT_PACKAGES: dict[str, CreditPackage] = {
    "starter": CreditPackage(
        id="starter",
        name="Starter",
        price=9,
        credits=1000,
        description="Perfect for trying out AI advertising",
    ),
    "professional": CreditPackage(
        id="professional",
        name="Professional",
        price=18,
        credits=2200,
        description="Great value for regular creators",
        popular=True,
    ),
    "business": CreditPackage(
        id="business",
        name="Business",
        price=34,
        credits=4000,
        description="Maximum value for power users",
    ),
}


def get_credit_package(package_id: str) -> Optional[CreditPackage]:
    return CREDIT_PACKAGES.get(package_id)


def get_credits_per_dollar(package_id: str) -> Optional[float]:
    package = get_credit_package(package_id)
    return package.credits / package.price if package else None
