"""Commerce workflows that touch several collaborators at once.

Every mutating step returns the identifiers its compensation needs, so an
unwind never depends on state that only existed during the forward call.
Step outputs are plain JSON data, so a run resumed from a durable store
reads them back in the same shape.
"""

from typing import Any

from pydantic import BaseModel, Field

from saga_core.engine.types import ExecutionContext
from saga_core.errors import create_error
from saga_core.workflow import StepResponse, WorkflowDefinition, WorkflowRegistry, step

from .models import Customer, Link, Variant
from .services import (
    CartService,
    Collaborators,
    IdentityService,
    InventoryService,
    LinkService,
    Modules,
    PricingService,
    ProductService,
    StoreService,
    TokenService,
)

DEFAULT_CURRENCY = "cop"


def _currency(ctx: ExecutionContext) -> str:
    return ctx.config.get("default_currency", DEFAULT_CURRENCY)


# =============================================================================
# publish-variant-price
# =============================================================================


class PublishVariantPriceInput(BaseModel):
    variant_id: str
    product_id: str
    amount: int = Field(ge=0)
    currency_code: str | None = None
    quantity: int = Field(default=1, gt=0)


@step("reserve-inventory")
async def reserve_inventory(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    """Hold stock for the variant."""
    inventory = ctx.resolve(Collaborators.INVENTORY, InventoryService)
    reservation_id = await inventory.reserve(data["variant_id"], data["quantity"])
    return StepResponse({"reservation_id": reservation_id}, reservation_id)


@reserve_inventory.compensation
async def release_inventory(reservation_id: str, ctx: ExecutionContext) -> None:
    inventory = ctx.resolve(Collaborators.INVENTORY, InventoryService)
    await inventory.release(reservation_id)


@step("create-price-record")
async def create_price_record(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    pricing = ctx.resolve(Collaborators.PRICING, PricingService)
    price_set = await pricing.create_price_set(data["amount"], data["currency_code"])
    return StepResponse(price_set.model_dump(), price_set.id)


@create_price_record.compensation
async def delete_price_record(price_set_id: str, ctx: ExecutionContext) -> None:
    pricing = ctx.resolve(Collaborators.PRICING, PricingService)
    await pricing.delete_price_sets([price_set_id])


@step("link-price-to-product")
async def link_price_to_product(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    links = [
        Link(
            left_module=Modules.PRODUCT,
            left_id=data["product_id"],
            right_module=Modules.PRICING,
            right_id=data["price_set_id"],
        )
    ]
    await ctx.resolve(Collaborators.LINK, LinkService).create_links(links)
    return StepResponse([link.model_dump() for link in links])


@link_price_to_product.compensation
async def dismiss_price_links(links: list[dict[str, Any]], ctx: ExecutionContext) -> None:
    service = ctx.resolve(Collaborators.LINK, LinkService)
    await service.dismiss_links([Link.model_validate(link) for link in links])


def publish_variant_price_workflow() -> WorkflowDefinition:
    return (
        WorkflowDefinition(
            name="publish-variant-price",
            description="Reserve stock, create a price record and link it to the product",
            input_model=PublishVariantPriceInput,
        )
        .then(
            reserve_inventory,
            wire=lambda s: {"variant_id": s.input.variant_id, "quantity": s.input.quantity},
        )
        .then(
            create_price_record,
            wire=lambda s: {
                "amount": s.input.amount,
                "currency_code": s.input.currency_code or DEFAULT_CURRENCY,
            },
        )
        .then(
            link_price_to_product,
            wire=lambda s: {
                "product_id": s.input.product_id,
                "price_set_id": s.output("create-price-record")["id"],
            },
        )
        .returns(
            lambda s: {
                "reservation_id": s.output("reserve-inventory")["reservation_id"],
                "price_set_id": s.output("create-price-record")["id"],
                "product_id": s.input.product_id,
            }
        )
    )


# =============================================================================
# add-line-item
# =============================================================================


class AddLineItemInput(BaseModel):
    variant_id: str
    quantity: int = Field(gt=0)
    cart_id: str


@step("load-variant")
async def load_variant(data: AddLineItemInput, ctx: ExecutionContext) -> dict[str, Any]:
    """Fetch the variant and check it can be sold in the requested quantity."""
    variant = await ctx.resolve(Collaborators.PRODUCT, ProductService).get_variant(data.variant_id)
    if variant is None:
        raise create_error("ENTITY_NOT_FOUND", entity="variant", entity_id=data.variant_id)
    if not variant.active:
        raise create_error("PRECONDITION_FAILED", reason=f"variant '{variant.id}' is not active")
    if variant.stock < data.quantity:
        raise create_error(
            "PRECONDITION_FAILED",
            reason=f"requested {data.quantity} of '{variant.id}', {variant.stock} in stock",
        )
    return variant.model_dump()


@step("derive-unit-price")
async def derive_unit_price(data: dict[str, Any], ctx: ExecutionContext) -> int:
    variant = Variant.model_validate(data)
    if variant.price_set_id is None:
        raise create_error(
            "PRECONDITION_FAILED", reason=f"variant '{variant.id}' has no price set"
        )
    pricing = ctx.resolve(Collaborators.PRICING, PricingService)
    price_set = await pricing.get_price_set(variant.price_set_id)
    if price_set is None:
        raise create_error("ENTITY_NOT_FOUND", entity="price_set", entity_id=variant.price_set_id)
    return price_set.amount


@step("upsert-line-item")
async def upsert_line_item(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    """Add the quantity to an existing line item or create a new one.

    Compensation data carries the previous quantity; None means the item
    was created here and must be deleted.
    """
    cart = ctx.resolve(Collaborators.CART, CartService)
    existing = await cart.get_line_item(data["cart_id"], data["variant_id"])
    if existing is not None:
        item = await cart.update_line_item_quantity(
            existing.id, existing.quantity + data["quantity"]
        )
        previous = existing.quantity
    else:
        item = await cart.create_line_item(
            data["cart_id"], data["variant_id"], data["quantity"], data["unit_price"]
        )
        previous = None
    return StepResponse(
        item.model_dump(), {"line_item_id": item.id, "previous_quantity": previous}
    )


@upsert_line_item.compensation
async def restore_line_item(data: dict[str, Any], ctx: ExecutionContext) -> None:
    cart = ctx.resolve(Collaborators.CART, CartService)
    if data["previous_quantity"] is None:
        await cart.delete_line_item(data["line_item_id"])
    else:
        await cart.update_line_item_quantity(data["line_item_id"], data["previous_quantity"])


def add_line_item_workflow() -> WorkflowDefinition:
    return (
        WorkflowDefinition(
            name="add-line-item",
            description="Add a variant to a cart at its current price",
            input_model=AddLineItemInput,
        )
        .then(load_variant)
        .then(derive_unit_price, wire=lambda s: s.output("load-variant"))
        .then(
            upsert_line_item,
            wire=lambda s: {
                "cart_id": s.input.cart_id,
                "variant_id": s.input.variant_id,
                "quantity": s.input.quantity,
                "unit_price": s.output("derive-unit-price"),
            },
        )
    )


# =============================================================================
# create-product-prices
# =============================================================================


class VariantPrice(BaseModel):
    variant_id: str
    amount: int = Field(ge=0)
    currency_code: str | None = None


class ProductPrices(BaseModel):
    product_id: str
    store_id: str
    variants: list[VariantPrice]


class CreateProductPricesInput(BaseModel):
    products: list[ProductPrices]


@step("create-prices")
async def create_prices(data: CreateProductPricesInput, ctx: ExecutionContext) -> StepResponse:
    """Create one price set per variant and collect the links to create.

    The price sets are created in a single batch call, which the pricing
    service applies all-or-nothing, so a failure here leaves nothing behind.
    """
    pricing = ctx.resolve(Collaborators.PRICING, PricingService)
    variants = [
        (product, variant) for product in data.products for variant in product.variants
    ]
    created = await pricing.create_price_sets(
        [(v.amount, v.currency_code or _currency(ctx)) for _, v in variants]
    )

    links = [
        Link(
            left_module=Modules.VARIANT,
            left_id=variant.variant_id,
            right_module=Modules.PRICING,
            right_id=price_set.id,
        )
        for (_, variant), price_set in zip(variants, created, strict=True)
    ]
    links.extend(
        Link(
            left_module=Modules.STORE,
            left_id=product.store_id,
            right_module=Modules.PRODUCT,
            right_id=product.product_id,
        )
        for product in data.products
    )

    price_sets = [price_set.id for price_set in created]
    return StepResponse(
        {"price_sets": price_sets, "links": [link.model_dump() for link in links]},
        {"price_sets": price_sets},
    )


@create_prices.compensation
async def delete_prices(data: dict[str, Any], ctx: ExecutionContext) -> None:
    pricing = ctx.resolve(Collaborators.PRICING, PricingService)
    await pricing.delete_price_sets(data["price_sets"])


@step("create-price-links")
async def create_price_links(
    links: list[dict[str, Any]], ctx: ExecutionContext
) -> StepResponse:
    service = ctx.resolve(Collaborators.LINK, LinkService)
    await service.create_links([Link.model_validate(link) for link in links])
    return StepResponse(links)


@create_price_links.compensation
async def dismiss_links(links: list[dict[str, Any]], ctx: ExecutionContext) -> None:
    service = ctx.resolve(Collaborators.LINK, LinkService)
    await service.dismiss_links([Link.model_validate(link) for link in links])


def create_product_prices_workflow() -> WorkflowDefinition:
    return (
        WorkflowDefinition(
            name="create-product-prices",
            description="Price every variant of a batch of products and link them to their store",
            input_model=CreateProductPricesInput,
        )
        .then(create_prices)
        .then(create_price_links, wire=lambda s: s.output("create-prices")["links"])
        .returns(lambda s: {"price_sets": s.output("create-prices")["price_sets"]})
    )


# =============================================================================
# register-external-identity
# =============================================================================


class RegisterExternalIdentityInput(BaseModel):
    provider: str
    entity_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


@step("find-or-create-customer")
async def find_or_create_customer(
    data: RegisterExternalIdentityInput, ctx: ExecutionContext
) -> StepResponse:
    identity = ctx.resolve(Collaborators.IDENTITY, IdentityService)
    customer = await identity.find_customer_by_email(data.email)
    if customer is not None:
        # Pre-existing customer: nothing to undo
        return StepResponse(customer.model_dump(), None)
    customer = await identity.create_customer(data.email, data.first_name, data.last_name)
    return StepResponse(customer.model_dump(), customer.id)


@find_or_create_customer.compensation
async def delete_created_customer(customer_id: str, ctx: ExecutionContext) -> None:
    await ctx.resolve(Collaborators.IDENTITY, IdentityService).delete_customer(customer_id)


@step("create-auth-identity")
async def create_auth_identity(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    identity = ctx.resolve(Collaborators.IDENTITY, IdentityService)
    record = await identity.create_auth_identity(
        data["provider"], data["entity_id"], data["customer_id"]
    )
    return StepResponse(record.model_dump(), record.id)


@create_auth_identity.compensation
async def delete_auth_identity(auth_identity_id: str, ctx: ExecutionContext) -> None:
    identity = ctx.resolve(Collaborators.IDENTITY, IdentityService)
    await identity.delete_auth_identity(auth_identity_id)


@step("issue-access-token")
async def issue_access_token(auth_identity_id: str, ctx: ExecutionContext) -> str:
    return await ctx.resolve(Collaborators.TOKEN, TokenService).issue(auth_identity_id)


@issue_access_token.compensation
async def revoke_access_token(token: str, ctx: ExecutionContext) -> None:
    await ctx.resolve(Collaborators.TOKEN, TokenService).revoke(token)


def register_external_identity_workflow() -> WorkflowDefinition:
    return (
        WorkflowDefinition(
            name="register-external-identity",
            description="Attach an external auth provider account to a customer",
            input_model=RegisterExternalIdentityInput,
        )
        .then(find_or_create_customer)
        .then(
            create_auth_identity,
            wire=lambda s: {
                "provider": s.input.provider,
                "entity_id": s.input.entity_id,
                "customer_id": s.output("find-or-create-customer")["id"],
            },
        )
        .then(issue_access_token, wire=lambda s: s.output("create-auth-identity")["id"])
        .returns(
            lambda s: {
                "customer_id": s.output("find-or-create-customer")["id"],
                "auth_identity_id": s.output("create-auth-identity")["id"],
                "token": s.output("issue-access-token"),
            }
        )
    )


# =============================================================================
# create-seller-store
# =============================================================================


class CreateSellerStoreInput(BaseModel):
    seller_request_id: str


@step("load-seller-request")
async def load_seller_request(
    data: CreateSellerStoreInput, ctx: ExecutionContext
) -> dict[str, Any]:
    request = await ctx.resolve(Collaborators.STORE, StoreService).get_seller_request(
        data.seller_request_id
    )
    if request is None:
        raise create_error(
            "ENTITY_NOT_FOUND", entity="seller_request", entity_id=data.seller_request_id
        )
    customer = await ctx.resolve(Collaborators.IDENTITY, IdentityService).get_customer(
        request.customer_id
    )
    if customer is None:
        raise create_error("ENTITY_NOT_FOUND", entity="customer", entity_id=request.customer_id)
    return {"request": request.model_dump(), "customer": customer.model_dump()}


@step("create-store")
async def create_store(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    """Create the seller's store, unless the customer already owns one."""
    stores = ctx.resolve(Collaborators.STORE, StoreService)
    customer = Customer.model_validate(data["customer"])
    if await stores.get_customer_store(customer.id) is not None:
        return StepResponse(None)

    name = f"{customer.first_name or ''} {customer.last_name or ''} Store".strip()
    store = await stores.create_store(name, _currency(ctx))
    return StepResponse(store.model_dump(), store.id)


@create_store.compensation
async def delete_store(store_id: str, ctx: ExecutionContext) -> None:
    await ctx.resolve(Collaborators.STORE, StoreService).delete_stores([store_id])


@step("link-store-to-customer")
async def link_store_to_customer(data: dict[str, Any], ctx: ExecutionContext) -> StepResponse:
    if data["store"] is None:
        return StepResponse(None)
    links = [
        Link(
            left_module=Modules.STORE,
            left_id=data["store"]["id"],
            right_module=Modules.CUSTOMER,
            right_id=data["customer"]["id"],
        )
    ]
    await ctx.resolve(Collaborators.LINK, LinkService).create_links(links)
    return StepResponse([link.model_dump() for link in links])


link_store_to_customer.compensation(dismiss_links)


def create_seller_store_workflow() -> WorkflowDefinition:
    return (
        WorkflowDefinition(
            name="create-seller-store",
            description="Open a store for an approved seller request",
            input_model=CreateSellerStoreInput,
        )
        .then(load_seller_request)
        .then(create_store, wire=lambda s: s.output("load-seller-request"))
        .then(
            link_store_to_customer,
            wire=lambda s: {
                "store": s.output("create-store"),
                "customer": s.output("load-seller-request")["customer"],
            },
        )
        .returns(
            lambda s: {
                "seller_request_id": s.input.seller_request_id,
                "store_id": (s.output("create-store") or {}).get("id"),
                "created": s.output("create-store") is not None,
            }
        )
    )


def register_commerce_workflows(registry: WorkflowRegistry) -> list[WorkflowDefinition]:
    """Register every commerce workflow. Returns the registered definitions."""
    workflows = [
        publish_variant_price_workflow(),
        add_line_item_workflow(),
        create_product_prices_workflow(),
        register_external_identity_workflow(),
        create_seller_store_workflow(),
    ]
    for workflow in workflows:
        registry.register(workflow)
    return workflows
