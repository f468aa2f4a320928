"""Commerce entities exchanged between steps and collaborators."""

from pydantic import BaseModel, Field


class Variant(BaseModel):
    id: str
    product_id: str
    title: str = ""
    active: bool = True
    stock: int = 0
    price_set_id: str | None = None


class PriceSet(BaseModel):
    id: str
    amount: int = Field(description="Amount in minor currency units")
    currency_code: str


class LineItem(BaseModel):
    id: str
    cart_id: str
    variant_id: str
    quantity: int
    unit_price: int


class Customer(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


class AuthIdentity(BaseModel):
    id: str
    provider: str
    entity_id: str
    customer_id: str


class Store(BaseModel):
    id: str
    name: str
    currency_code: str


class SellerRequest(BaseModel):
    id: str
    customer_id: str
    status: str = "pending"


class Link(BaseModel):
    """A cross-module association, e.g. product -> price set."""

    left_module: str
    left_id: str
    right_module: str
    right_id: str

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.left_module, self.left_id, self.right_module, self.right_id)
