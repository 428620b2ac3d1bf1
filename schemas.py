from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ratings import label_to_value

RatingInput = Union[int, str]


class RecipeCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = Field(
        default=None, json_schema_extra={"example": "https://example.com/pancakes"}
    )
    title: Optional[str] = None
    memo: Optional[str] = None
    rating: Optional[RatingInput] = Field(
        default=None, json_schema_extra={"example": "would repeat"}
    )
    image_url: Optional[str] = None


class RecipeUpdate(BaseModel):
    """Partial update. Only these keys are accepted; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    url: Optional[str] = None
    title: Optional[str] = None
    memo: Optional[str] = None
    rating: Optional[RatingInput] = None
    image_url: Optional[str] = None

    def provided(self) -> dict:
        return self.model_dump(exclude_unset=True)


class Recipe(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    title: Optional[str] = None
    domain: Optional[str] = None
    memo: Optional[str] = None
    rating: str
    image_url: Optional[str] = None
    date_added: datetime
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def display_title(self) -> str:
        return self.title or self.domain or "Recipe"

    @computed_field
    @property
    def rating_value(self) -> int:
        return label_to_value(self.rating)


class PreviewInfo(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    domain: Optional[str] = None
    is_existing: bool = False


class AdminLogin(BaseModel):
    admin_id: Optional[str] = Field(default=None, alias="adminId")
    admin_password: Optional[str] = Field(default=None, alias="adminPassword")

    model_config = ConfigDict(populate_by_name=True)


class AdminIdentity(BaseModel):
    id: str
    name: str
    role: str
