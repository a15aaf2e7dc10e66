# src/models/mapping.py
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict

class ResourceMapping(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    connection_id: str
    resource_type: str
    source_id: str
    target_id: str
    source_gid: str
    target_gid: str
    match_key: str
    match_value: str
    sync_run_id: Optional[int] = None
    title: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class UnmappedReference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    connection_id: str
    resource_type: str
    source_gid: str
    source_id: str
    context: str = ''
    found_in_type: Optional[str] = None
    attempted_at: Optional[datetime] = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None
