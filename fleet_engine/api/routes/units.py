from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID

from fleet_engine.api.schemas.database import UnitResponse
from fleet_engine.api.container import get_unit_service

router = APIRouter(prefix="/units", tags=["units"])


@router.get("/{unit_id}", response_model=UnitResponse)
def get_unit(
    unit_id: UUID,
    service=Depends(get_unit_service),
):
    unit = service.get_unit(unit_id)

    if not unit:
        raise HTTPException(status_code=404, detail="Unit not found")

    return UnitResponse.from_unit(unit)
