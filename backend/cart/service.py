"""
Cas d'usage 'cart' (CartStore): panier par utilisateur, lignes uniques par produit.

Les contrôles de stock faits ici sont indicatifs (lecture du stock courant, aucune réservation):
la réservation qui fait foi a lieu au checkout (backend.stock.service), le panier pouvant
devenir obsolète entre l'ajout et l'achat.
"""
from typing import Any, Dict, List
import logging

from backend.errors import InsufficientStock, InvalidQuantity, NotFoundError, ProductUnavailable, ValidationError
from backend.products import repository as products_repo
from . import repository

logger = logging.getLogger(__name__)


def _parse_quantity(value: Any) -> int:
    # 1.5 ou "abc" -> refusé (pas d'arrondi silencieux)
    if isinstance(value, bool):
        raise InvalidQuantity(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidQuantity(value)


def _require_product_id(product_id: Any) -> str:
    pid = str(product_id or "").strip()
    if not pid:
        raise ValidationError("Identifiant produit requis")
    return pid


def _require_active_product(product_id: str) -> Dict[str, Any]:
    product = products_repo.get_product(product_id)
    if not product or product.get("status") != "active":
        logger.warning("cart: product not found or inactive product_id=%s", product_id)
        raise ProductUnavailable(product_id)
    return product


def _check_stock(product: Dict[str, Any], wanted: int) -> None:
    available = int(product.get("stock") or 0)
    if available < wanted:
        logger.warning("cart: insufficient stock product_id=%s requested=%s available=%s", product.get("id"), wanted, available)
        raise InsufficientStock(str(product.get("id")), available, wanted, name=product.get("name"))


def get_cart(user_id: str) -> List[Dict[str, Any]]:
    """
    Retourne les lignes du panier enrichies avec les données produit courantes.
    - Panier vide: [] (état valide, pas une erreur)
    - Produit supprimé du catalogue: la ligne est conservée avec product=None
    """
    rows = repository.list_items(user_id)
    if not rows:
        return []
    products = products_repo.get_products_map([r.get("product_id") for r in rows])
    cart: List[Dict[str, Any]] = []
    for row in rows:
        pid = str(row.get("product_id"))
        product = products.get(pid)
        cart.append({
            "productId": pid,
            "quantity": int(row.get("quantity") or 0),
            "product": {
                "id": pid,
                "name": product.get("name"),
                "price": float(product.get("price") or 0),
                "stock": int(product.get("stock") or 0),
                "status": product.get("status"),
            } if product else None,
        })
    return cart


def add_item(user_id: str, product_id: Any, quantity: Any) -> List[Dict[str, Any]]:
    """
    Ajoute un produit au panier (fusion avec la ligne existante: quantités additionnées).
    Erreurs: InvalidQuantity (< 1), ProductUnavailable (absent/inactif),
    InsufficientStock (quantité existante + nouvelle > stock courant).
    """
    qty = _parse_quantity(quantity)
    if qty < 1:
        raise InvalidQuantity(quantity)
    pid = _require_product_id(product_id)
    product = _require_active_product(pid)

    existing = repository.get_item(user_id, pid)
    new_quantity = qty + (int(existing.get("quantity") or 0) if existing else 0)
    _check_stock(product, new_quantity)

    repository.upsert_item(user_id, pid, new_quantity)
    logger.info("cart.add user_id=%s product_id=%s qty=%s total=%s", user_id, pid, qty, new_quantity)
    return get_cart(user_id)


def update_item(user_id: str, product_id: Any, quantity: Any) -> List[Dict[str, Any]]:
    """
    Remplace la quantité d'une ligne (pas d'addition).
    - quantity <= 0: suppression de la ligne (équivalent à remove_item)
    - sinon: re-valide le produit et le stock courant
    """
    qty = _parse_quantity(quantity)
    pid = _require_product_id(product_id)
    if qty <= 0:
        return remove_item(user_id, pid)

    if not repository.get_item(user_id, pid):
        raise NotFoundError("Article absent du panier", extra={"productId": pid})
    product = _require_active_product(pid)
    _check_stock(product, qty)

    repository.upsert_item(user_id, pid, qty)
    logger.info("cart.update user_id=%s product_id=%s qty=%s", user_id, pid, qty)
    return get_cart(user_id)


def remove_item(user_id: str, product_id: Any) -> List[Dict[str, Any]]:
    """Supprime la ligne du produit. Idempotent: retirer un article absent n'est pas une erreur."""
    pid = _require_product_id(product_id)
    repository.delete_item(user_id, pid)
    logger.info("cart.remove user_id=%s product_id=%s", user_id, pid)
    return get_cart(user_id)


def clear_cart(user_id: str) -> List[Dict[str, Any]]:
    """Vide le panier. Idempotent."""
    repository.clear(user_id)
    logger.info("cart.clear user_id=%s", user_id)
    return []
