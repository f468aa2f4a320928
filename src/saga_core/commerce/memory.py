"""In-memory commerce collaborators.

A single object plays every collaborator role. Deletes and releases are
idempotent, so compensations can be retried safely. Mutating calls are
appended to ``journal`` in the order they happened.
"""

import asyncio
import itertools
from typing import Any

from saga_core.container import ServiceContainer
from saga_core.errors import create_error

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
from .services import Collaborators, Modules


class InMemoryCommerce:
    """Inventory, pricing, product, link, cart, store, identity and token services."""

    def __init__(self, latency: float = 0.0):
        """Initialize empty in-memory state.

        Args:
            latency: Seconds every call sleeps, to simulate I/O
        """
        self.latency = latency
        self.journal: list[tuple[str, str]] = []

        self.products: set[str] = set()
        self.variants: dict[str, Variant] = {}
        self.reservations: dict[str, tuple[str, int]] = {}
        self.price_sets: dict[str, PriceSet] = {}
        self.links: dict[tuple[str, str, str, str], Link] = {}
        self.line_items: dict[str, LineItem] = {}
        self.stores: dict[str, Store] = {}
        self.customer_stores: dict[str, str] = {}
        self.seller_requests: dict[str, SellerRequest] = {}
        self.customers: dict[str, Customer] = {}
        self.auth_identities: dict[str, AuthIdentity] = {}
        self.tokens: dict[str, str] = {}

        self._ids = itertools.count(1)

    def register_into(self, container: ServiceContainer) -> None:
        """Register this bundle under every collaborator name."""
        for name in (
            Collaborators.INVENTORY,
            Collaborators.PRICING,
            Collaborators.PRODUCT,
            Collaborators.LINK,
            Collaborators.CART,
            Collaborators.STORE,
            Collaborators.IDENTITY,
            Collaborators.TOKEN,
        ):
            container.register(name, self)

    # Seeding

    def add_product(self, product_id: str) -> None:
        self.products.add(product_id)

    def add_variant(self, variant: Variant) -> Variant:
        self.products.add(variant.product_id)
        self.variants[variant.id] = variant
        return variant

    def add_price_set(self, amount: int, currency_code: str = "cop") -> PriceSet:
        price_set = PriceSet(id=self._id("pset"), amount=amount, currency_code=currency_code)
        self.price_sets[price_set.id] = price_set
        return price_set

    def add_customer(
        self, email: str, first_name: str | None = None, last_name: str | None = None
    ) -> Customer:
        customer = Customer(
            id=self._id("cus"), email=email, first_name=first_name, last_name=last_name
        )
        self.customers[customer.id] = customer
        return customer

    def add_seller_request(self, customer_id: str) -> SellerRequest:
        request = SellerRequest(id=self._id("sreq"), customer_id=customer_id)
        self.seller_requests[request.id] = request
        return request

    def _id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids):04d}"

    async def _io(self, operation: str | None = None, target: str = "") -> None:
        await asyncio.sleep(self.latency)
        if operation:
            self.journal.append((operation, target))

    # InventoryService

    async def reserve(self, variant_id: str, quantity: int) -> str:
        await self._io()
        variant = self.variants.get(variant_id)
        if variant is None:
            raise create_error("ENTITY_NOT_FOUND", entity="variant", entity_id=variant_id)
        if self.available(variant_id) < quantity:
            raise create_error(
                "PRECONDITION_FAILED",
                reason=f"only {self.available(variant_id)} of '{variant_id}' in stock",
            )
        reservation_id = self._id("res")
        self.reservations[reservation_id] = (variant_id, quantity)
        self.journal.append(("reserve", reservation_id))
        return reservation_id

    async def release(self, reservation_id: str) -> None:
        await self._io("release", reservation_id)
        self.reservations.pop(reservation_id, None)

    def available(self, variant_id: str) -> int:
        variant = self.variants.get(variant_id)
        if variant is None:
            return 0
        reserved = sum(q for v, q in self.reservations.values() if v == variant_id)
        return variant.stock - reserved

    # PricingService

    async def create_price_set(self, amount: int, currency_code: str) -> PriceSet:
        await self._io()
        price_set = self.add_price_set(amount, currency_code)
        self.journal.append(("create_price_set", price_set.id))
        return price_set

    async def create_price_sets(self, prices: list[tuple[int, str]]) -> list[PriceSet]:
        await self._io()
        for amount, currency_code in prices:
            if amount < 0 or len(currency_code) != 3 or not currency_code.isalpha():
                raise create_error(
                    "PRECONDITION_FAILED",
                    reason=f"invalid price {amount} {currency_code!r}",
                )
        created = [self.add_price_set(amount, currency_code) for amount, currency_code in prices]
        self.journal.append(("create_price_sets", ",".join(p.id for p in created)))
        return created

    async def get_price_set(self, price_set_id: str) -> PriceSet | None:
        await self._io()
        return self.price_sets.get(price_set_id)

    async def delete_price_sets(self, price_set_ids: list[str]) -> None:
        await self._io("delete_price_sets", ",".join(price_set_ids))
        for price_set_id in price_set_ids:
            self.price_sets.pop(price_set_id, None)

    # ProductService

    async def get_variant(self, variant_id: str) -> Variant | None:
        await self._io()
        return self.variants.get(variant_id)

    # LinkService

    async def create_links(self, links: list[Link]) -> None:
        await self._io()
        for link in links:
            self._require(link.left_module, link.left_id)
            self._require(link.right_module, link.right_id)
        for link in links:
            self.links[link.key] = link
            if (link.left_module, link.right_module) == (Modules.STORE, Modules.CUSTOMER):
                self.customer_stores[link.right_id] = link.left_id
        self.journal.append(("create_links", str(len(links))))

    async def dismiss_links(self, links: list[Link]) -> None:
        await self._io("dismiss_links", str(len(links)))
        for link in links:
            self.links.pop(link.key, None)
            if (link.left_module, link.right_module) == (Modules.STORE, Modules.CUSTOMER):
                if self.customer_stores.get(link.right_id) == link.left_id:
                    del self.customer_stores[link.right_id]

    def _require(self, module: str, entity_id: str) -> None:
        known: dict[str, Any] = {
            Modules.PRODUCT: self.products,
            Modules.VARIANT: self.variants,
            Modules.PRICING: self.price_sets,
            Modules.STORE: self.stores,
            Modules.CUSTOMER: self.customers,
        }
        if module in known and entity_id not in known[module]:
            raise create_error("ENTITY_NOT_FOUND", entity=module, entity_id=entity_id)

    # CartService

    async def get_line_item(self, cart_id: str, variant_id: str) -> LineItem | None:
        await self._io()
        for item in self.line_items.values():
            if item.cart_id == cart_id and item.variant_id == variant_id:
                return item
        return None

    async def create_line_item(
        self, cart_id: str, variant_id: str, quantity: int, unit_price: int
    ) -> LineItem:
        await self._io()
        item = LineItem(
            id=self._id("item"),
            cart_id=cart_id,
            variant_id=variant_id,
            quantity=quantity,
            unit_price=unit_price,
        )
        self.line_items[item.id] = item
        self.journal.append(("create_line_item", item.id))
        return item

    async def update_line_item_quantity(self, line_item_id: str, quantity: int) -> LineItem:
        await self._io()
        item = self.line_items.get(line_item_id)
        if item is None:
            raise create_error("ENTITY_NOT_FOUND", entity="line_item", entity_id=line_item_id)
        item = item.model_copy(update={"quantity": quantity})
        self.line_items[item.id] = item
        self.journal.append(("update_line_item_quantity", item.id))
        return item

    async def delete_line_item(self, line_item_id: str) -> None:
        await self._io("delete_line_item", line_item_id)
        self.line_items.pop(line_item_id, None)

    # StoreService

    async def get_seller_request(self, request_id: str) -> SellerRequest | None:
        await self._io()
        return self.seller_requests.get(request_id)

    async def get_customer_store(self, customer_id: str) -> Store | None:
        await self._io()
        store_id = self.customer_stores.get(customer_id)
        return self.stores.get(store_id) if store_id else None

    async def create_store(self, name: str, currency_code: str) -> Store:
        await self._io()
        store = Store(id=self._id("store"), name=name, currency_code=currency_code)
        self.stores[store.id] = store
        self.journal.append(("create_store", store.id))
        return store

    async def delete_stores(self, store_ids: list[str]) -> None:
        await self._io("delete_stores", ",".join(store_ids))
        for store_id in store_ids:
            self.stores.pop(store_id, None)
            for customer_id, linked in list(self.customer_stores.items()):
                if linked == store_id:
                    del self.customer_stores[customer_id]

    # IdentityService

    async def get_customer(self, customer_id: str) -> Customer | None:
        await self._io()
        return self.customers.get(customer_id)

    async def find_customer_by_email(self, email: str) -> Customer | None:
        await self._io()
        for customer in self.customers.values():
            if customer.email == email:
                return customer
        return None

    async def create_customer(
        self, email: str, first_name: str | None, last_name: str | None
    ) -> Customer:
        await self._io()
        customer = self.add_customer(email, first_name, last_name)
        self.journal.append(("create_customer", customer.id))
        return customer

    async def delete_customer(self, customer_id: str) -> None:
        await self._io("delete_customer", customer_id)
        self.customers.pop(customer_id, None)

    async def create_auth_identity(
        self, provider: str, entity_id: str, customer_id: str
    ) -> AuthIdentity:
        await self._io()
        for identity in self.auth_identities.values():
            if identity.provider == provider and identity.entity_id == entity_id:
                raise create_error(
                    "PRECONDITION_FAILED",
                    reason=f"{provider} identity '{entity_id}' is already registered",
                )
        identity = AuthIdentity(
            id=self._id("authid"),
            provider=provider,
            entity_id=entity_id,
            customer_id=customer_id,
        )
        self.auth_identities[identity.id] = identity
        self.journal.append(("create_auth_identity", identity.id))
        return identity

    async def delete_auth_identity(self, auth_identity_id: str) -> None:
        await self._io("delete_auth_identity", auth_identity_id)
        self.auth_identities.pop(auth_identity_id, None)

    # TokenService

    async def issue(self, auth_identity_id: str) -> str:
        await self._io()
        token = self._id("tok")
        self.tokens[token] = auth_identity_id
        self.journal.append(("issue", token))
        return token

    async def revoke(self, token: str) -> None:
        await self._io("revoke", token)
        self.tokens.pop(token, None)
