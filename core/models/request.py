"""Customer request (tattoo enquiry an artist answers with an offer)."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class RequestStatus(str, Enum):
    """Request status. Written by the intake flow except for OFFERED."""

    NEW = "new"
    REVIEWED = "reviewed"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CustomerRequest(BaseModel):
    """A customer's enquiry addressed to one artist, as stored."""

    id: UUID
    artist_id: UUID
    customer_id: UUID | None = None
    name: str
    phone: str
    email: str | None = None
    description: str | None = None
    status: RequestStatus
    created_at: datetime

    model_config = {"from_attributes": True}

    def recipient(self) -> dict:
        """Contact details for notifications about this request."""
        return {
            "customer_id": self.customer_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
        }
