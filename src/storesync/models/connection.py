from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

class StoreConnection(BaseModel):
    """A source store paired with the target shop the service writes to"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop: str
    name: Optional[str] = None
    store_domain: str
    encrypted_token: str
    environment: Optional[str] = 'production'
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
