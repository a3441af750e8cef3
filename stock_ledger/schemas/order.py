from typing import Annotated, List, Literal, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field

from stock_ledger.models.order import OrderStatus


class DishLineItem(BaseModel):
    """An order line for a (possibly customised) dish."""
    item_type: Literal["dish"] = "dish"
    # Raw reference as received from the caller; may be missing or malformed
    dish_instance_id: Optional[str] = None
    item_name: str = ""
    quantity: int = Field(..., ge=0)


class BundleLineItem(BaseModel):
    """An order line for a bundle (redeemed as vouchers, no dish stock)."""
    item_type: Literal["bundle"] = "bundle"
    bundle_instance_id: Optional[str] = None
    item_name: str = ""
    quantity: int = Field(..., ge=0)


LineItem = Annotated[Union[DishLineItem, BundleLineItem], Field(discriminator="item_type")]


class PlatformInfo(BaseModel):
    platform: str
    platform_order_id: Optional[str] = None


class OrderSnapshot(BaseModel):
    """Read-only view of an order handed to the inventory resolver."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    store_id: uuid.UUID
    status: OrderStatus
    order_code: str = ""
    platform_info: Optional[PlatformInfo] = None
    items: List[LineItem] = Field(default_factory=list)

    @property
    def dish_items(self) -> List[DishLineItem]:
        return [item for item in self.items if isinstance(item, DishLineItem)]

    @property
    def platform_order_id(self) -> Optional[str]:
        return self.platform_info.platform_order_id if self.platform_info else None
