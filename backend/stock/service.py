"""
Registre de stock (StockLedger): source de vérité des unités achetables par produit.

- reserve: lecture + contrôle + écriture conditionnelle (CAS) en une seule opération logique,
  rejouée tant qu'un autre écrivain modifie le stock entre la lecture et l'écriture.
- reserve_all: réserve toutes les lignes d'une commande ou aucune (libère les lignes déjà
  réservées si une ligne échoue).
- release: remet des unités en stock (compensation, annulation de commande).
Pas de verrou applicatif: la contention est portée par produit, par la base.
"""
from typing import Dict, List, Tuple
import logging

from backend.config import STOCK_CAS_MAX_ATTEMPTS
from backend.errors import ConflictError, InsufficientStock, ProductNotFound
from backend.products import repository as products_repo

logger = logging.getLogger(__name__)


def _current_stock(product: Dict) -> int:
    try:
        return max(int(product.get("stock") or 0), 0)
    except (TypeError, ValueError):
        return 0


def reserve(product_id: str, quantity: int) -> int:
    """
    Décrémente atomiquement le stock de `quantity` unités.
    Retourne le stock restant. Lève InsufficientStock(product_id, available) si le stock courant
    ne suffit pas, ProductNotFound si le produit a disparu.
    """
    if quantity <= 0:
        raise ValueError("quantity must be > 0")
    for attempt in range(1, STOCK_CAS_MAX_ATTEMPTS + 1):
        product = products_repo.get_product(product_id)
        if not product:
            raise ProductNotFound(product_id)
        available = _current_stock(product)
        if available < quantity:
            raise InsufficientStock(product_id, available, quantity, name=product.get("name"))
        if products_repo.compare_and_set_stock(product_id, available, available - quantity):
            logger.info("stock.reserve product_id=%s qty=%s remaining=%s", product_id, quantity, available - quantity)
            return available - quantity
        logger.debug("stock.reserve contention product_id=%s attempt=%s", product_id, attempt)
    raise ConflictError(f"Stock du produit {product_id} en cours de mise à jour, réessayez")


def release(product_id: str, quantity: int) -> int:
    """Remet `quantity` unités en stock (CAS). Retourne le nouveau stock."""
    if quantity <= 0:
        raise ValueError("quantity must be > 0")
    for _ in range(STOCK_CAS_MAX_ATTEMPTS):
        product = products_repo.get_product(product_id)
        if not product:
            raise ProductNotFound(product_id)
        current = _current_stock(product)
        if products_repo.compare_and_set_stock(product_id, current, current + quantity):
            logger.info("stock.release product_id=%s qty=%s stock=%s", product_id, quantity, current + quantity)
            return current + quantity
    raise ConflictError(f"Stock du produit {product_id} en cours de mise à jour, réessayez")


def release_all(reserved: List[Tuple[str, int]]) -> None:
    """
    Libère une liste de réservations (ordre inverse).
    Une libération en échec est journalisée puis on continue avec les suivantes.
    """
    for product_id, qty in reversed(reserved):
        try:
            release(product_id, qty)
        except Exception:
            logger.exception("stock.release_all failed product_id=%s qty=%s", product_id, qty)


def reserve_all(quantities: Dict[str, int]) -> List[Tuple[str, int]]:
    """
    Réserve toutes les lignes {product_id: qty} ou aucune.
    Retourne la liste des réservations effectuées (utile pour compenser plus tard).
    """
    reserved: List[Tuple[str, int]] = []
    try:
        for product_id, qty in quantities.items():
            reserve(product_id, qty)
            reserved.append((product_id, qty))
    except Exception:
        if reserved:
            logger.warning("stock.reserve_all rollback lines=%s", reserved)
            release_all(reserved)
        raise
    return reserved
