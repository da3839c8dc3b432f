from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    FARMER = "farmer"
    DISTRIBUTOR = "distributor"
    RETAILER = "retailer"
    CONSUMER = "consumer"


class Principal(BaseModel):
    """Authenticated caller, as asserted by the identity service's token."""
    id: str
    role: Role
    display_name: str = ""
    wallet_ref: str | None = None

    model_config = {"frozen": True}
