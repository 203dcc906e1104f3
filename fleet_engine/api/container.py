#fleet_engine\api\container.py
from fastapi import Depends

from fleet_engine.container import Container, get_container
from fleet_engine.core.repository import FleetRecords
from fleet_engine.core.service import UnitService
from fleet_engine.orchestrator.provisioner import DatabaseProvisioner


def get_app_container() -> Container:
    return get_container()


def get_unit_service(container: Container = Depends(get_app_container)) -> UnitService:
    return container.unit_service


def get_provisioner(container: Container = Depends(get_app_container)) -> DatabaseProvisioner:
    return container.provisioner


def get_records(container: Container = Depends(get_app_container)) -> FleetRecords:
    return container.records
