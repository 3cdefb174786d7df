"""
Accès Supabase Auth (GoTrue), en lecture seule: la boutique ne délivre pas de sessions,
elle résout seulement un access token en utilisateur.
"""
from typing import Any, Dict
import backend.infra.supabase_client as supabase_client


# module backend.auth.repository
def get_user_from_access_token(access_token: str) -> Dict[str, Any]:
    """Récupère et normalise l'utilisateur depuis supabase.auth.get_user(access_token)."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) or {}
    if not isinstance(user, dict):
        user = {
            "id": getattr(user, "id", None),
            "email": getattr(user, "email", None),
            "user_metadata": getattr(user, "user_metadata", None),
        }
    return user or {}
