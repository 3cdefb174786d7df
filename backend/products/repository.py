"""
Accès aux données 'products' (lecture catalogue + mises à jour conditionnelles du stock).
- Les lectures ne masquent pas les erreurs: une panne Supabase ne doit pas passer pour un produit absent.
- compare_and_set_stock est la seule écriture du stock: UPDATE ... WHERE id = ? AND stock = <attendu>.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging
import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = "id, name, price, stock, status"

# module backend.products.repository
def get_product(product_id: str) -> Optional[Dict[str, Any]]:
    """Retourne le produit {id, name, price, stock, status} ou None s'il n'existe pas."""
    if not product_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table("products")
        .select(PRODUCT_FIELDS)
        .eq("id", str(product_id))
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def fetch_products_by_ids(ids: Iterable[str]) -> List[Dict[str, Any]]:
    ids = [str(i) for i in ids if i]
    if not ids:
        return []
    res = (
        supabase_client.get_service_supabase()
        .table("products")
        .select(PRODUCT_FIELDS)
        .in_("id", ids)
        .execute()
    )
    return res.data or []

def get_products_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Retourne un dict {id: produit} à partir d'une liste d'IDs.
    """
    return {str(p.get("id")): p for p in fetch_products_by_ids(ids)}

def compare_and_set_stock(product_id: str, expected: int, new_stock: int) -> bool:
    """
    Mise à jour conditionnelle (optimistic concurrency) du stock.
    - N'écrit que si la valeur courante vaut toujours `expected`.
    - Retourne True si une ligne a été modifiée, False si un autre écrivain est passé avant.
    """
    if new_stock < 0:
        raise ValueError("stock négatif interdit")
    res = (
        supabase_client.get_service_supabase()
        .table("products")
        .update({"stock": new_stock})
        .eq("id", str(product_id))
        .eq("stock", expected)
        .execute()
    )
    updated = bool(res.data)
    if not updated:
        logger.debug("products.repository.compare_and_set_stock miss product_id=%s expected=%s", product_id, expected)
    return updated
