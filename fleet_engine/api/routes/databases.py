from fastapi import APIRouter, Depends, HTTPException

from fleet_engine.api.schemas.database import (
    DatabaseRequest,
    RenderResponse,
    UnitResponse,
)
from fleet_engine.api.container import get_provisioner, get_records
from fleet_engine.domain.models import EngineConfig
from fleet_engine.infrastructure.memory.inventory import engine_config_from_dict

router = APIRouter(prefix="/databases", tags=["databases"])


def _to_engine_config(request: DatabaseRequest, records) -> EngineConfig:
    server = records.get_server(request.server_id)
    if server is None:
        raise HTTPException(status_code=404, detail=f"Server {request.server_id} not found")

    return engine_config_from_dict(
        request.model_dump(exclude={"server_id", "summary"}),
        server,
    )


@router.post("/start", response_model=UnitResponse, status_code=202)
def start_database(
    request: DatabaseRequest,
    provisioner=Depends(get_provisioner),
    records=Depends(get_records),
):
    config = _to_engine_config(request, records)
    unit = provisioner.start(config, summary=request.summary)
    return UnitResponse.from_unit(unit)


@router.post("/render", response_model=RenderResponse)
def render_database(
    request: DatabaseRequest,
    provisioner=Depends(get_provisioner),
    records=Depends(get_records),
):
    config = _to_engine_config(request, records)
    rendered = provisioner.render(config, summary=request.summary)

    return RenderResponse(
        instance_id=rendered.spec.instance_id,
        descriptor=rendered.spec.to_compose(),
        descriptor_yaml=rendered.spec.to_yaml(),
        files=[f.path for f in rendered.files],
        commands=list(rendered.sequence.commands),
        uploads=[u.path for u in rendered.sequence.uploads],
    )
