import logging
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import backend.infra.supabase_client as supabase_client
from backend.utils.rate_limit import rate_limit_health_info

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root():
    return {"ok": True}


@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)


@router.get("/supabase")
def health_supabase():
    """Lecture minimale sur 'products' avec la clé service; 503 si Supabase est injoignable."""
    try:
        supabase_client.get_service_supabase().table("products").select("id").limit(1).execute()
        return {"ok": True}
    except Exception as e:
        logger.warning("health.supabase failed: %s", e)
        return JSONResponse(status_code=503, content={"ok": False, "error": type(e).__name__})
