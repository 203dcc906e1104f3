from datetime import datetime
from uuid import UUID
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class PersistentStorageSchema(BaseModel):
    name: str
    mount_path: str
    host_path: Optional[str] = None


class InitScriptSchema(BaseModel):
    filename: str
    content: str


class DatabaseRequest(BaseModel):
    """Desired configuration of one managed database instance."""
    uuid: str
    name: str
    engine: str = Field(..., description="mongodb | postgresql | redis")
    image: str
    server_id: int
    network: str
    credentials: Dict[str, str]

    limits: Dict[str, Any] = Field(default_factory=dict)
    persistent_storages: List[PersistentStorageSchema] = Field(default_factory=list)
    ports_mappings: List[str] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    custom_conf: Optional[str] = None
    init_scripts: List[InitScriptSchema] = Field(default_factory=list)
    is_log_drain_enabled: bool = False

    summary: Optional[str] = Field(default=None, description="README content; generated when omitted")


class RenderResponse(BaseModel):
    instance_id: str
    descriptor: Dict[str, Any]
    descriptor_yaml: str
    files: List[str]
    commands: List[str]
    uploads: List[str]


class UnitResponse(BaseModel):
    unit_id: UUID
    duty: str
    target_id: str
    server_id: int
    state: str
    event_kind: str
    created_at: datetime
    finished_at: Optional[datetime] = None
    output: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_unit(cls, unit) -> "UnitResponse":
        return cls(
            unit_id=unit.unit_id,
            duty=unit.duty.value,
            target_id=unit.target_id,
            server_id=unit.server_id,
            state=unit.state.value,
            event_kind=unit.event_kind,
            created_at=unit.created_at,
            finished_at=unit.finished_at,
            output=unit.output,
            error_message=unit.error_message,
        )
