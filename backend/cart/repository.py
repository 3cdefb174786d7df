"""
Accès aux données du panier (table cart_items, une ligne par (user_id, product_id)).
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import backend.infra.supabase_client as supabase_client

# module backend.cart.repository
def list_items(user_id: str) -> List[Dict[str, Any]]:
    res = (
        supabase_client.get_service_supabase()
        .table("cart_items")
        .select("user_id, product_id, quantity, created_at, updated_at")
        .eq("user_id", user_id)
        .order("created_at", desc=False)
        .execute()
    )
    return res.data or []

def get_item(user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
    res = (
        supabase_client.get_service_supabase()
        .table("cart_items")
        .select("user_id, product_id, quantity")
        .eq("user_id", user_id)
        .eq("product_id", str(product_id))
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def upsert_item(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    """
    Crée ou remplace la ligne (user_id, product_id) avec la quantité donnée.
    L'unicité par produit est garantie par la contrainte (user_id, product_id).
    """
    now = datetime.now(timezone.utc).isoformat()
    res = (
        supabase_client.get_service_supabase()
        .table("cart_items")
        .upsert(
            {"user_id": user_id, "product_id": str(product_id), "quantity": int(quantity), "updated_at": now},
            on_conflict="user_id,product_id",
        )
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else {"user_id": user_id, "product_id": str(product_id), "quantity": int(quantity)}

def delete_item(user_id: str, product_id: str) -> None:
    (
        supabase_client.get_service_supabase()
        .table("cart_items")
        .delete()
        .eq("user_id", user_id)
        .eq("product_id", str(product_id))
        .execute()
    )

def clear(user_id: str) -> None:
    supabase_client.get_service_supabase().table("cart_items").delete().eq("user_id", user_id).execute()
