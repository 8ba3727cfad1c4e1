# replenisher/models/customer_model.py
from pydantic import BaseModel, ConfigDict


class Customer(BaseModel):
    """Customer record owned by the wider platform (read-only here)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
