from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional
import pytz

@dataclass
class RunContext:
    """
    Everything one sync run shares between its stages. Built fresh for each
    run and discarded afterwards; nothing here is persisted.
    """
    connection_id: str
    run_id: Optional[int]
    source_api: Any
    target_api: Any
    logger: Any
    translator: Any = None
    metafields: Any = None
    inventory: Any = None
    # source location id -> target location id
    location_map: Optional[Dict[str, str]] = None
    publications: Optional[List[Dict[str, Any]]] = None
    # metaobject definition type -> target definition id
    definition_types: Dict[str, str] = field(default_factory=dict)
    # source definition id -> metaobject definition type
    source_definition_types: Dict[str, str] = field(default_factory=dict)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    def log(self, level: str, message: str, **data) -> None:
        """Write to the service log and keep a copy for the run record"""
        entry = {
            'timestamp': datetime.now(pytz.UTC).isoformat(),
            'level': level,
            'message': message,
        }
        if data:
            entry['data'] = data
        self.logs.append(entry)

        log_method = getattr(self.logger, level, self.logger.info)
        log_method(f"[run {self.run_id}] {message}")

    async def close(self) -> None:
        for api in (self.source_api, self.target_api):
            if api is not None:
                await api.close()
