# module backend.cart.views

"""Endpoints du panier (/api/v1/cart), tous limités à l'utilisateur authentifié.
- POST /add: ajoute (ou fusionne) une ligne
- GET "": lignes enrichies avec les données produit courantes
- PUT /update: remplace la quantité (quantity <= 0 => suppression, pas une erreur)
- DELETE /remove/{product_id}: idempotent
- DELETE /clear: idempotent
"""
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from backend.utils.security import require_user
from backend.cart import service as cart_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class CartItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(default=None, alias="productId")
    quantity: Any = None


@router.post("/add")
def api_add_to_cart(req: CartItemRequest, user: Dict[str, Any] = Depends(require_user)):
    """Ajoute un produit au panier.
    - 400 si quantité < 1, 404 si produit absent/inactif, 400 si stock insuffisant (avec 'available')
    """
    cart = cart_service.add_item(user.get("id"), req.product_id, req.quantity)
    return {"message": "Article ajouté au panier", "cart": cart}


@router.get("")
def api_get_cart(user: Dict[str, Any] = Depends(require_user)):
    return {"cart": cart_service.get_cart(user.get("id"))}


@router.put("/update")
def api_update_cart_item(req: CartItemRequest, user: Dict[str, Any] = Depends(require_user)):
    """Met à jour la quantité d'une ligne; quantity <= 0 retire la ligne."""
    cart = cart_service.update_item(user.get("id"), req.product_id, req.quantity)
    return {"message": "Panier mis à jour", "cart": cart}


@router.delete("/remove/{product_id}")
def api_remove_cart_item(product_id: str, user: Dict[str, Any] = Depends(require_user)):
    cart = cart_service.remove_item(user.get("id"), product_id)
    return {"message": "Article retiré du panier", "cart": cart}


@router.delete("/clear")
def api_clear_cart(user: Dict[str, Any] = Depends(require_user)):
    cart = cart_service.clear_cart(user.get("id"))
    return {"message": "Panier vidé", "cart": cart}
