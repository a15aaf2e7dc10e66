from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from storesync.utils.constants import RunStatus

class SyncRun(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    connection_id: str
    resource_types: List[str] = Field(default_factory=list)
    trigger: str = 'manual'
    status: RunStatus = RunStatus.RUNNING
    summary: Dict[str, Any] = Field(default_factory=dict)
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_status(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'connection_id': self.connection_id,
            'status': self.status.value,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'summary': self.summary,
            'logs': self.logs,
        }

class SyncRequest(BaseModel):
    connection_id: str
    resource_types: List[str]
