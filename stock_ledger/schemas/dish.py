from typing import List, Optional
import uuid

from pydantic import BaseModel, Field


class OptionSelection(BaseModel):
    option_id: Optional[str] = None
    name: str = ""
    price: float = 0
    # Pre-resolved Option.ref_dish_template; when absent the resolver looks the option up
    referenced_template_id: Optional[uuid.UUID] = None


class OptionCategorySelection(BaseModel):
    option_category_id: Optional[str] = None
    option_category_name: str = ""
    selections: List[OptionSelection] = Field(default_factory=list)


class DishInstanceView(BaseModel):
    id: uuid.UUID
    template_id: uuid.UUID
    name: str = ""
    options: List[OptionCategorySelection] = Field(default_factory=list)


class OptionView(BaseModel):
    id: uuid.UUID
    name: str
    ref_dish_template_id: Optional[uuid.UUID] = None


class DishTemplateView(BaseModel):
    id: uuid.UUID
    name: str
