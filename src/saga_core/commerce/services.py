"""Collaborator interfaces resolved by the commerce steps."""

from typing import Protocol, runtime_checkable

from .models import (
    AuthIdentity,
    Customer,
    LineItem,
    Link,
    PriceSet,
    SellerRequest,
    Store,
    Variant,
)


class Collaborators:
    """Container names of the commerce collaborators."""

    INVENTORY = "inventory"
    PRICING = "pricing"
    PRODUCT = "product"
    LINK = "link"
    CART = "cart"
    STORE = "store"
    IDENTITY = "identity"
    TOKEN = "token"


class Modules:
    """Module names used on either side of a Link."""

    PRODUCT = "product"
    VARIANT = "variant"
    PRICING = "pricing"
    STORE = "store"
    CUSTOMER = "customer"


@runtime_checkable
class InventoryService(Protocol):
    async def reserve(self, variant_id: str, quantity: int) -> str: ...

    async def release(self, reservation_id: str) -> None: ...


@runtime_checkable
class PricingService(Protocol):
    async def create_price_set(self, amount: int, currency_code: str) -> PriceSet: ...

    async def create_price_sets(self, prices: list[tuple[int, str]]) -> list[PriceSet]:
        """Create several price sets at once. Either all are created or none."""
        ...

    async def get_price_set(self, price_set_id: str) -> PriceSet | None: ...

    async def delete_price_sets(self, price_set_ids: list[str]) -> None: ...


@runtime_checkable
class ProductService(Protocol):
    async def get_variant(self, variant_id: str) -> Variant | None: ...


@runtime_checkable
class LinkService(Protocol):
    async def create_links(self, links: list[Link]) -> None: ...

    async def dismiss_links(self, links: list[Link]) -> None: ...


@runtime_checkable
class CartService(Protocol):
    async def get_line_item(self, cart_id: str, variant_id: str) -> LineItem | None: ...

    async def create_line_item(
        self, cart_id: str, variant_id: str, quantity: int, unit_price: int
    ) -> LineItem: ...

    async def update_line_item_quantity(self, line_item_id: str, quantity: int) -> LineItem: ...

    async def delete_line_item(self, line_item_id: str) -> None: ...


@runtime_checkable
class StoreService(Protocol):
    async def get_seller_request(self, request_id: str) -> SellerRequest | None: ...

    async def get_customer_store(self, customer_id: str) -> Store | None: ...

    async def create_store(self, name: str, currency_code: str) -> Store: ...

    async def delete_stores(self, store_ids: list[str]) -> None: ...


@runtime_checkable
class IdentityService(Protocol):
    async def get_customer(self, customer_id: str) -> Customer | None: ...

    async def find_customer_by_email(self, email: str) -> Customer | None: ...

    async def create_customer(
        self, email: str, first_name: str | None, last_name: str | None
    ) -> Customer: ...

    async def delete_customer(self, customer_id: str) -> None: ...

    async def create_auth_identity(
        self, provider: str, entity_id: str, customer_id: str
    ) -> AuthIdentity: ...

    async def delete_auth_identity(self, auth_identity_id: str) -> None: ...


@runtime_checkable
class TokenService(Protocol):
    async def issue(self, auth_identity_id: str) -> str: ...

    async def revoke(self, token: str) -> None: ...
