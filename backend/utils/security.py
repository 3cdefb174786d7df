from fastapi import Request, HTTPException, Depends
from typing import Dict, Any, Optional
import logging

from backend.auth import service as auth_service

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"


def extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)


def get_current_user(request: Request) -> Dict[str, Any]:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        user = auth_service.get_user_from_token(token)
    except Exception:
        logger.warning("auth: token rejeté par Supabase Auth")
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user


def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Accès interdit")
    return user
