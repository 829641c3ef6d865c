"""
Pydantic models for API request/response serialization.

Responses use the camelCase wire names the marketplace frontend expects
(``_id``, ``isNegotiable``, ``createdAt``...); Python code uses snake_case.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r".+@.+\..+"


class Category(str, Enum):
    TRACTORS = "Tractors and Machinery"
    FERTILIZERS = "Fertilizers"
    CROP_SEEDS = "Crop Seeds"
    IRRIGATION = "Irrigation Systems"
    VEGGIES = "Veggies"
    MORE = "More"


class Condition(str, Enum):
    NEW = "New"
    USED_LIKE_NEW = "Used - Like New"
    USED_GOOD = "Used - Good"
    USED_FAIR = "Used - Fair"
    FOR_PARTS = "For Parts"


class MarketModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests

class RegisterBody(MarketModel):
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    phone: Optional[str] = None


class LoginBody(MarketModel):
    email: str
    password: str


class MessageBody(MarketModel):
    content: Optional[str] = None


class ListingPayload(MarketModel):
    """A listing as it must look before it reaches the store."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )

    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    price: float = Field(ge=0, allow_inf_nan=False)
    category: Category
    condition: Condition = Condition.USED_GOOD
    location: str = Field(min_length=1)
    is_negotiable: bool = False


# Responses

class UserOut(MarketModel):
    """Public user projection; never carries the credential hash."""
    id: str = Field(alias="_id")
    name: str
    email: str
    phone: Optional[str] = None


class AuthorOut(MarketModel):
    id: str = Field(alias="_id")
    name: str
    email: Optional[str] = None


class AuthResponse(MarketModel):
    message: str
    token: str
    user: UserOut


class ListingOut(MarketModel):
    id: str = Field(alias="_id")
    title: str
    description: str
    price: float
    category: str
    condition: str
    location: str
    images: List[str] = Field(default_factory=list)
    is_negotiable: bool = False
    seller: Optional[UserOut] = None
    created_at: str
    updated_at: str


class ListingUpdateResponse(MarketModel):
    message: str
    listing: ListingOut


class MessageOut(MarketModel):
    id: str = Field(alias="_id")
    sender: Optional[AuthorOut] = None
    recipient: Optional[AuthorOut] = None
    listing: str
    content: str
    created_at: str


class MessageSentResponse(MarketModel):
    message: str
    data: MessageOut


class DiscussionPostOut(MarketModel):
    id: str = Field(alias="_id")
    title: str
    content: str
    image_url: Optional[str] = None
    author: Optional[AuthorOut] = None
    created_at: str
    updated_at: str


class CommunityStats(MarketModel):
    total_posts: int
    total_members: int
    active_discussions: int = 0
    new_posts_this_week: int = 0
    online_now: int = 0


class StatusMessage(MarketModel):
    message: str


class DeletedPost(MarketModel):
    message: str
    id: str
