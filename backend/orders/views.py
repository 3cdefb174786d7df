# module backend.orders.views

"""Endpoints Commandes (/api/v1/orders).
- POST /checkout: crée la commande (réserve le stock), 201 {message, order}
- GET /user: commandes de l'appelant (page, limit)
- GET "", /count, /total-sales: back-office (admin)
- GET /{order_id}: détail (propriétaire ou admin)
- PUT /{order_id}/status: changement de statut (admin), notifie le client
Sécurité:
- require_user / require_admin
- optional_rate_limit sur le checkout
"""
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from backend.utils.security import require_admin, require_user
from backend.utils.rate_limit import optional_rate_limit
from backend.orders import service as orders_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


class CheckoutRequest(BaseModel):
    # Les types fins sont validés par le service (réponses 400 homogènes)
    items: Any = None
    shippingAddress: Any = None
    paymentMethod: Optional[str] = None
    subtotal: Any = None
    deliveryCharge: Any = None
    totalAmount: Any = None


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


@router.post("/checkout", status_code=201, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def api_checkout(req: CheckoutRequest, user: Dict[str, Any] = Depends(require_user)):
    """Crée une commande.
    - 400 payload invalide / stock insuffisant (productId, available), 404 produit absent
    - cod: Completed/Processing; card: Pending/Pending (paiement via /api/v1/payments)
    """
    order = orders_service.checkout(user.get("id"), req.model_dump())
    return {"message": "Commande créée", "order": order}


@router.get("/user")
def api_user_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Dict[str, Any] = Depends(require_user),
):
    return orders_service.list_user_orders(user.get("id"), page=page, limit=limit)


@router.get("")
def api_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=64),
    admin: Dict[str, Any] = Depends(require_admin),
):
    """Back-office: toutes les commandes (status, search sur le numéro)."""
    return orders_service.list_orders(page=page, limit=limit, status=status, search=search)


@router.get("/count")
def api_count_orders(admin: Dict[str, Any] = Depends(require_admin)):
    return orders_service.count_orders()


@router.get("/total-sales")
def api_total_sales(admin: Dict[str, Any] = Depends(require_admin)):
    return orders_service.total_sales()


@router.get("/{order_id}")
def api_get_order(order_id: str, user: Dict[str, Any] = Depends(require_user)):
    return orders_service.get_order_for_user(order_id, user)


@router.put("/{order_id}/status")
def api_update_order_status(order_id: str, req: StatusUpdateRequest, admin: Dict[str, Any] = Depends(require_admin)):
    order = orders_service.update_status(order_id, req.status)
    logger.info("orders.status by admin=%s order_id=%s status=%s", admin.get("email"), order_id, req.status)
    return {"message": "Commande mise à jour", "order": order}
