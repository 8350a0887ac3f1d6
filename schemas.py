"""
Request schemas for the turf booking API

Each model maps onto a MongoDB collection:

- BookingIn -> bookings
- ReviewIn -> reviews
- PurchaseIn -> purchases

The site posts whatever its forms collect, so every model accepts extra
fields and stores them untouched. The named fields are documented for the
OpenAPI page only; none of them is required.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class OpenDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    def to_document(self) -> dict:
        return self.model_dump(exclude_unset=True)


class BookingIn(OpenDocument):
    groundId: Optional[Any] = Field(None, description="Ground identifier")
    date: Optional[Any] = Field(None, description="Booking date (ISO date or date-time)")
    slot: Optional[Any] = Field(None, description="Time window, e.g. 10-11")


class ReviewIn(OpenDocument):
    text: Optional[Any] = Field(None, description="Review text")
    rating: Optional[Any] = Field(None, description="Star rating")
    timestamp: Optional[Any] = Field(None, description="Client clock, used for ordering")


class PurchaseIn(OpenDocument):
    item: Optional[Any] = Field(None, description="Accessory or refreshment name")
    qty: Optional[Any] = Field(None, description="Quantity")
    type: Optional[Any] = Field(None, description="accessory | refreshment")
