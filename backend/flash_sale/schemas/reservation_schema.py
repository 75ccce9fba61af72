from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer
from pydantic.alias_generators import to_camel

from flash_sale.models.reservation import ReservationStatus


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ItemOut(_Out):
    id: str
    name: str
    price_cents: int
    available_quantity: int

    @computed_field
    @property
    def price(self) -> str:
        return f"{self.price_cents / 100:.2f}"


class ReservationOut(_Out):
    """Serialized with the web client's names: userId, productId and a product snapshot."""

    id: str
    actor_id: str = Field(serialization_alias="userId")
    item_id: str = Field(serialization_alias="productId")
    quantity: int
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    item: Optional[ItemOut] = Field(default=None, serialization_alias="product")

    @field_serializer("status")
    def _status(self, v):
        return getattr(v, "value", v)

    @field_serializer("created_at", "updated_at", "expires_at")
    def _utc(self, v: datetime) -> str:
        # stored as naive UTC
        return v.replace(tzinfo=timezone.utc).isoformat()


class ReservationIn(BaseModel):
    """Body of POST /api/reservations. Accepts userId/productId as sent by the web client."""

    model_config = ConfigDict(populate_by_name=True)

    actor_id: str = Field(alias="userId", min_length=1, max_length=128)
    item_id: str = Field(alias="productId", min_length=1, max_length=64)
    quantity: int = Field(gt=0)
