"""Couche d'accès aux données (Supabase) pour le domaine Utilisateurs.
Lecture du profil (destinataire des notifications) et écriture de l'abonnement.
- L'abonnement est écrit par mise à jour conditionnelle sur membership_ref (référence du
  dernier paiement appliqué): un même paiement ne peut être appliqué qu'une fois.
"""
from typing import Any, Dict, Optional
import logging
import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

USER_FIELDS = "id, email, name, membership, membership_ref"


def get_user_by_id(user_id: str) -> Optional[dict]:
    """Récupère un utilisateur par id (table users).
    - Retour: dict utilisateur ou None si introuvable
    """
    if not user_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table("users")
        .select(USER_FIELDS)
        .eq("id", str(user_id))
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None


def set_membership_if_ref(user_id: str, expected_ref: Optional[str], membership: Dict[str, Any], new_ref: str) -> Optional[Dict[str, Any]]:
    """
    Applique l'abonnement si membership_ref vaut toujours `expected_ref` (None = jamais abonné).
    Retourne la ligne mise à jour, ou None si un autre déclencheur est passé avant.
    """
    query = (
        supabase_client.get_service_supabase()
        .table("users")
        .update({"membership": membership, "membership_ref": new_ref})
        .eq("id", str(user_id))
    )
    if expected_ref is None:
        query = query.is_("membership_ref", "null")
    else:
        query = query.eq("membership_ref", expected_ref)
    res = query.execute()
    rows = res.data or []
    return rows[0] if rows else None
