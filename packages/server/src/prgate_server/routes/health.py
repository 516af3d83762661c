from fastapi import APIRouter, Depends

from prgate_core.services import Services
from prgate_server.dependencies import get_services

router = APIRouter()


@router.get("/health")
def health_check(services: Services = Depends(get_services)):
    return {"status": "ok", "tasks": services.dispatcher.counts()}
