"""Property models - the slice of a listing the appointment flow reads."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Address(BaseModel):
    """Property address."""
    street: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    country: Optional[str] = None


class ListingAgent(BaseModel):
    """Contact details of the agent advertised on the listing."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class PropertySummary(BaseModel):
    """Property fields denormalized into appointment responses."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Property ID (text)")
    title: Optional[str] = None
    type: Optional[str] = Field(None, description="Property type (apartment, villa, ...)")
    price: Optional[float] = Field(None, ge=0)
    images: list[str] = Field(default_factory=list)
    address: Optional[Address] = None
    agent: Optional[ListingAgent] = Field(None, description="Listing agent, only on single-read views")
