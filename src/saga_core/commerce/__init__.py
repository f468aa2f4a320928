"""Commerce collaborators and the workflows built on them."""

from .memory import InMemoryCommerce
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
from .workflows import (
    AddLineItemInput,
    CreateProductPricesInput,
    CreateSellerStoreInput,
    PublishVariantPriceInput,
    RegisterExternalIdentityInput,
    add_line_item_workflow,
    create_product_prices_workflow,
    create_seller_store_workflow,
    publish_variant_price_workflow,
    register_commerce_workflows,
    register_external_identity_workflow,
)

__all__ = [
    # Collaborators
    "Collaborators",
    "Modules",
    "InventoryService",
    "PricingService",
    "ProductService",
    "LinkService",
    "CartService",
    "StoreService",
    "IdentityService",
    "TokenService",
    "InMemoryCommerce",
    # Entities
    "Variant",
    "PriceSet",
    "LineItem",
    "Customer",
    "AuthIdentity",
    "Store",
    "SellerRequest",
    "Link",
    # Workflows
    "PublishVariantPriceInput",
    "AddLineItemInput",
    "CreateProductPricesInput",
    "RegisterExternalIdentityInput",
    "CreateSellerStoreInput",
    "publish_variant_price_workflow",
    "add_line_item_workflow",
    "create_product_prices_workflow",
    "register_external_identity_workflow",
    "create_seller_store_workflow",
    "register_commerce_workflows",
]
