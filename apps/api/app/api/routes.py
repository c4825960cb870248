from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.authz.api import router as authz_router
from app.core.auth import require_principal
from app.core.config import get_settings
from app.funnels.api import router as funnels_router
from app.identity import Principal
from app.media.api import router as media_router
from app.metrics import generate_metrics_payload, metrics_content_type
from app.notifications.api import router as notifications_router
from app.pipelines.api import router as pipelines_router
from app.tenancy.api import (
    agencies_router,
    invitations_router,
    permissions_router,
    subaccounts_router,
    users_router,
)

router = APIRouter()
router.include_router(authz_router)
router.include_router(agencies_router)
router.include_router(subaccounts_router)
router.include_router(users_router)
router.include_router(permissions_router)
router.include_router(invitations_router)
router.include_router(notifications_router)
router.include_router(pipelines_router)
router.include_router(media_router)
router.include_router(funnels_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(principal: Principal = Depends(require_principal)) -> dict[str, str | None]:
    role = principal.metadata_role
    return {
        "id": principal.id,
        "email": principal.email,
        "name": principal.name,
        "role": role.value if role is not None else None,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
