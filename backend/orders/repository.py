"""
Accès aux données 'orders'.

Les transitions de paiement sont des mises à jour conditionnelles: le filtre porte l'état
attendu (ex. payment_status = 'Pending') et un résultat vide signifie qu'un autre
déclencheur a déjà effectué la transition. Les erreurs Supabase ne sont pas masquées.
"""
from typing import Any, Dict, List, Optional
import logging
from postgrest.exceptions import APIError
import backend.infra.supabase_client as supabase_client
from backend.orders.models import generate_order_number, now_iso

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "id, order_number, user_id, items, subtotal, delivery_charge, total_amount, shipping_address, "
    "status, payment_status, payment_method, payment_details, payment_intent_id, created_at, updated_at"
)


def _first(res) -> Optional[Dict[str, Any]]:
    rows = res.data or []
    return rows[0] if rows else None


# module backend.orders.repository
def _unique_violation(e: APIError) -> bool:
    code = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return code == "23505"


def insert_order(row: Dict[str, Any], max_attempts: int = 3) -> Dict[str, Any]:
    """
    Insère la commande. Un order_number déjà pris (contrainte unique, code 23505)
    est régénéré puis l'insertion rejouée.
    """
    payload = dict(row)
    payload.setdefault("created_at", now_iso())
    payload.setdefault("updated_at", payload["created_at"])
    for attempt in range(1, max_attempts + 1):
        try:
            res = supabase_client.get_service_supabase().table("orders").insert(payload).execute()
        except APIError as e:
            if not _unique_violation(e) or attempt == max_attempts:
                raise
            logger.warning("orders.insert order_number collision %s, retry", payload.get("order_number"))
            payload["order_number"] = generate_order_number()
            continue
        created = _first(res)
        if not created:
            raise RuntimeError("Insertion de la commande sans retour")
        return created
    raise RuntimeError("Insertion de la commande impossible")


def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    if not order_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .select(ORDER_FIELDS)
        .eq("id", str(order_id))
        .limit(1)
        .execute()
    )
    return _first(res)


def get_order_by_intent(payment_intent_id: str) -> Optional[Dict[str, Any]]:
    if not payment_intent_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .select(ORDER_FIELDS)
        .eq("payment_intent_id", payment_intent_id)
        .limit(1)
        .execute()
    )
    return _first(res)


def _count(res) -> int:
    if getattr(res, "count", None) is not None:
        return int(res.count)
    return len(res.data or [])


def list_user_orders(user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """
    Commandes de l'utilisateur, plus récentes d'abord.
    Retourne {"rows": [...], "total": n}.
    """
    start = (page - 1) * limit
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .select(ORDER_FIELDS, count="exact")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .range(start, start + limit - 1)
        .execute()
    )
    return {"rows": res.data or [], "total": _count(res)}


def list_orders(page: int = 1, limit: int = 10, status: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
    """
    Toutes les commandes (back-office), plus récentes d'abord.
    - status: égalité stricte
    - search: sous-chaîne du numéro de commande, insensible à la casse
    total porte sur l'ensemble filtré, pas sur la page.
    """
    start = (page - 1) * limit
    query = supabase_client.get_service_supabase().table("orders").select(ORDER_FIELDS, count="exact")
    if status:
        query = query.eq("status", status)
    if search:
        query = query.ilike("order_number", f"%{search}%")
    res = query.order("created_at", desc=True).range(start, start + limit - 1).execute()
    return {"rows": res.data or [], "total": _count(res)}


def count_orders() -> int:
    res = supabase_client.get_service_supabase().table("orders").select("id", count="exact").execute()
    return _count(res)


def delivered_totals() -> List[Any]:
    """Montants totaux des commandes livrées."""
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .select("total_amount")
        .eq("status", "Delivered")
        .execute()
    )
    return [r.get("total_amount") for r in (res.data or [])]


def mark_completed_if(order_id: str, payment_intent_id: str, expected_payment_status: str, payment_details: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    <attendu> -> Completed (statut commande -> Processing), pour l'intent actif uniquement.
    Une commande annulée n'est jamais réactivée.
    Retourne la ligne mise à jour si CET appel a gagné la transition, None sinon.
    """
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .update({
            "payment_status": "Completed",
            "status": "Processing",
            "payment_details": payment_details,
            "updated_at": now_iso(),
        })
        .eq("id", str(order_id))
        .eq("payment_status", expected_payment_status)
        .eq("payment_intent_id", payment_intent_id)
        .neq("status", "Cancelled")
        .execute()
    )
    return _first(res)


def mark_failed_if_pending(order_id: str, payment_intent_id: str, payment_details: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Pending -> Failed. Le statut de la commande n'est pas modifié."""
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .update({
            "payment_status": "Failed",
            "payment_details": payment_details,
            "updated_at": now_iso(),
        })
        .eq("id", str(order_id))
        .eq("payment_status", "Pending")
        .eq("payment_intent_id", payment_intent_id)
        .execute()
    )
    return _first(res)


def attach_intent(order_id: str, payment_intent_id: str, expected_payment_status: str) -> Optional[Dict[str, Any]]:
    """
    Enregistre l'intent actif de la commande et (re)passe le paiement à Pending.
    Conditionnée par le statut de paiement attendu: Failed -> Pending pour une nouvelle tentative.
    """
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .update({
            "payment_intent_id": payment_intent_id,
            "payment_status": "Pending",
            "updated_at": now_iso(),
        })
        .eq("id", str(order_id))
        .eq("payment_status", expected_payment_status)
        .execute()
    )
    return _first(res)


def update_status_if(order_id: str, expected_status: str, new_status: str) -> Optional[Dict[str, Any]]:
    """Transition de statut commande conditionnée par le statut précédent."""
    res = (
        supabase_client.get_service_supabase()
        .table("orders")
        .update({"status": new_status, "updated_at": now_iso()})
        .eq("id", str(order_id))
        .eq("status", expected_status)
        .execute()
    )
    return _first(res)
