from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pedidobot.services.pricing import cents_from_amount


class RawOrderItem(BaseModel):
    """One entry of the ``{"items": [...]}`` block as the model writes it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: int
    product_name: str = Field("", alias="nombre_product")
    flavor_id: int | None = Field(None, alias="sabor_id")
    flavor_name: str | None = Field(None, alias="sabor_nombre")
    quantity: int = Field(..., gt=0)
    total_price: Decimal | None = Field(None, ge=0)
    total_price_cents: int | None = Field(None, ge=0)
    operation: Literal["add", "remove"] = "add"

    @field_validator("operation", mode="before")
    @classmethod
    def _normalize_operation(cls, value):
        if value is None:
            return "add"
        return str(value).strip().lower()

    @field_validator("product_name", mode="before")
    @classmethod
    def _empty_name(cls, value):
        return value or ""

    def subtotal_cents(self) -> int | None:
        if self.total_price_cents is not None:
            return self.total_price_cents
        if self.total_price is not None:
            return cents_from_amount(self.total_price)
        return None


class ExtractedOrderOp(BaseModel):
    product_id: int
    product_name: str = ""
    flavor_id: int | None = None
    flavor_name: str | None = None
    quantity: int = Field(..., gt=0)
    subtotal_cents: int = Field(0, ge=0)
    operation: Literal["add", "remove"] = "add"

    @property
    def key(self) -> tuple[int, int | None]:
        return (self.product_id, self.flavor_id)


class ParseStatus(str, Enum):
    OK = "ok"
    NEEDS_CLARIFICATION = "needs_clarification"
    EMPTY = "empty"


@dataclass(frozen=True)
class ParseResult:
    status: ParseStatus
    items: tuple[ExtractedOrderOp, ...] = ()
    skipped_blocks: int = 0
    skipped_items: int = 0

    @property
    def needs_clarification(self) -> bool:
        return self.status is ParseStatus.NEEDS_CLARIFICATION

    @classmethod
    def empty(cls, *, skipped_blocks: int = 0, skipped_items: int = 0) -> "ParseResult":
        return cls(ParseStatus.EMPTY, skipped_blocks=skipped_blocks, skipped_items=skipped_items)

    @classmethod
    def clarification(cls) -> "ParseResult":
        return cls(ParseStatus.NEEDS_CLARIFICATION)

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "needs_clarification": self.needs_clarification,
            "items": [item.model_dump() for item in self.items],
            "skipped_blocks": self.skipped_blocks,
            "skipped_items": self.skipped_items,
        }
