from fastapi import APIRouter, Depends

from ..dependencies import get_services
from ..services import AppServices

router = APIRouter(tags=["health"])


@router.get("/health")
def health(services: AppServices = Depends(get_services)):
	return {
		"status": "ok",
		"demo_mode": services.demo_mode,
		"active_sessions": len(services.relay.registry),
	}
