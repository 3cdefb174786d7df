from typing import Any, Dict, Optional
import logging

from backend.config import ADMIN_EMAILS
from .repository import get_user_from_access_token as _repo_get_user_from_token

logger = logging.getLogger(__name__)


def determine_role(metadata: Optional[Dict[str, Any]], email: Optional[str] = None) -> str:
    """admin si user_metadata.role == 'admin' ou si l'email figure dans ADMIN_EMAILS, sinon user."""
    if str((metadata or {}).get("role", "")).lower() == "admin":
        return "admin"
    if email and email.lower() in {e.lower() for e in ADMIN_EMAILS}:
        return "admin"
    return "user"


def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise user issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, metadata, role, token}
    """
    raw = _repo_get_user_from_token(access_token)
    email = raw.get("email")
    metadata = raw.get("user_metadata") or {}
    role = determine_role(metadata, email)
    return {"id": raw.get("id"), "email": email, "metadata": metadata, "role": role, "token": access_token}
