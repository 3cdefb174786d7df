"""
Cas d'usage 'orders' (OrderFactory + gestion des commandes).

Checkout:
1. Validation du payload (articles, adresse, moyen de paiement, montants)
2. Lecture des produits (404 si absent, 404 si inactif)
3. Réservation du stock de toutes les lignes (tout ou rien)
4. Écriture de la commande; en cas d'échec d'écriture, le stock réservé est restitué
5. cod => payé/Processing + e-mail de confirmation (best-effort); card => Pending/Pending
Aucun effet sur le panier: il n'est vidé qu'au règlement du paiement.
"""
from typing import Any, Dict, Optional
import logging

from backend.config import DEFAULT_DELIVERY_CHARGE
from backend.errors import ConflictError, OrderNotFound, ProductNotFound, ProductUnavailable, ValidationError
from backend.notifications import service as notifications
from backend.products import repository as products_repo
from backend.stock import service as stock_service
from backend.orders import models, repository

logger = logging.getLogger(__name__)


def checkout(user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Crée une commande à partir du payload client.
    Le snapshot (nom, prix unitaire) et les totaux sont recalculés à partir du catalogue;
    un totalAmount client incohérent (> 0,01 d'écart) est refusé.
    """
    lines = models.parse_items(payload.get("items"))
    if payload.get("totalAmount") is None:
        raise ValidationError("totalAmount requis")
    shipping_address = models.validate_shipping_address(payload.get("shippingAddress"))
    method = models.normalize_payment_method(payload.get("paymentMethod"))
    quantities = models.aggregate_quantities(lines)

    products = products_repo.get_products_map(quantities.keys())
    for pid in quantities:
        product = products.get(pid)
        if not product:
            logger.warning("checkout: product not found product_id=%s user_id=%s", pid, user_id)
            raise ProductNotFound(pid)
        if product.get("status") != "active":
            logger.warning("checkout: product inactive product_id=%s status=%s", pid, product.get("status"))
            raise ProductUnavailable(pid)

    delivery_charge = models.resolve_delivery_charge(payload.get("deliveryCharge"), DEFAULT_DELIVERY_CHARGE)
    items, subtotal = models.build_snapshot(products, quantities)
    total_amount = round(subtotal + delivery_charge, 2)
    models.check_client_total(payload.get("totalAmount"), total_amount)

    reserved = stock_service.reserve_all(quantities)

    row = {
        "order_number": models.generate_order_number(),
        "user_id": user_id,
        "items": items,
        "subtotal": subtotal,
        "delivery_charge": delivery_charge,
        "total_amount": total_amount,
        "shipping_address": shipping_address,
        "payment_method": method,
        **models.initial_payment_state(method),
    }
    try:
        created = repository.insert_order(row)
    except Exception:
        logger.exception("checkout: order insert failed, releasing stock user_id=%s", user_id)
        stock_service.release_all(reserved)
        raise

    order = models.format_order(created)
    logger.info(
        "checkout ok order=%s user_id=%s method=%s total=%s",
        order["orderNumber"], user_id, method, total_amount,
    )
    if method == "cod":
        notifications.dispatch_order_confirmed(order, user_id)
    return order


def list_user_orders(user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), 100)
    res = repository.list_user_orders(user_id, page=page, limit=limit)
    return {"orders": [models.format_order(r) for r in res["rows"]], "total": res["total"]}


def list_orders(page: int = 1, limit: int = 10, status: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
    """Back-office: toutes les commandes, filtrables par statut et numéro."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), 100)
    status = (status or "").strip() or None
    if status and status not in models.ORDER_STATUSES:
        raise ValidationError("Statut de commande invalide", extra={"status": status})
    # % et _ sont des jokers ilike: recherche littérale sur le numéro
    search = "".join(ch for ch in (search or "").strip() if ch not in "%_,()")[:64] or None
    res = repository.list_orders(page=page, limit=limit, status=status, search=search)
    return {"orders": [models.format_order(r) for r in res["rows"]], "total": res["total"]}


def count_orders() -> Dict[str, int]:
    return {"count": repository.count_orders()}


def total_sales() -> Dict[str, float]:
    """Somme des totalAmount des commandes livrées."""
    total = sum(float(amount or 0) for amount in repository.delivered_totals())
    return {"totalSales": round(total, 2)}


def get_order_for_user(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """Commande de l'appelant; un admin peut lire toutes les commandes. Sinon 404 (pas de fuite)."""
    row = repository.get_order(order_id)
    if not row:
        raise OrderNotFound(order_id)
    if row.get("user_id") != user.get("id") and user.get("role") != "admin":
        logger.warning("orders: access denied order_id=%s user_id=%s", order_id, user.get("id"))
        raise OrderNotFound(order_id)
    return models.format_order(row)


def update_status(order_id: str, new_status: Optional[str]) -> Dict[str, Any]:
    """
    Changement de statut (admin), conditionné par le statut lu.
    - Cancelled est terminal; passer à Cancelled restitue le stock une seule fois
    - Notification au client si le statut change (best-effort)
    """
    if new_status not in models.ORDER_STATUSES:
        raise ValidationError("Statut de commande invalide", extra={"status": new_status})
    row = repository.get_order(order_id)
    if not row:
        raise OrderNotFound(order_id)

    previous = row.get("status") or "Pending"
    if previous == new_status:
        return models.format_order(row)
    if previous == "Cancelled":
        raise ConflictError("Commande annulée: statut non modifiable", extra={"orderId": order_id})

    updated = repository.update_status_if(order_id, previous, new_status)
    if not updated:
        raise ConflictError("Commande modifiée simultanément, réessayez", extra={"orderId": order_id})

    if new_status == "Cancelled":
        reserved = [
            (str(it.get("product")), int(it.get("quantity") or 0))
            for it in (updated.get("items") or [])
            if int(it.get("quantity") or 0) > 0
        ]
        stock_service.release_all(reserved)

    order = models.format_order(updated)
    logger.info("orders.update_status order=%s %s -> %s", order["orderNumber"], previous, new_status)
    notifications.dispatch_order_status_changed(order, updated.get("user_id"), new_status)
    return order
