"""
Taxonomie d'erreurs métier de la boutique.

Toutes les erreurs dérivent de fastapi.HTTPException: les services les lèvent
directement et le handler de backend.app_setup.exceptions les sérialise en
{"detail": ..., **extra}.

- ValidationError (400): requête malformée ou champ manquant
- NotFoundError (404): produit, commande ou utilisateur introuvable
- ConflictError (400/409): stock insuffisant, commande déjà payée
- AuthorizationError (403): intent de paiement appartenant à un autre utilisateur
- ExternalServiceError (502): Stripe ou SMTP indisponible / en erreur
"""
from typing import Any, Dict, Optional
from fastapi import HTTPException


class StoreError(HTTPException):
    status_code_default = 500

    def __init__(self, detail: str, *, status_code: Optional[int] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)
        self.extra: Dict[str, Any] = extra or {}


class ValidationError(StoreError):
    status_code_default = 400


class InvalidQuantity(ValidationError):
    def __init__(self, quantity: Any):
        super().__init__("La quantité doit être supérieure ou égale à 1", extra={"quantity": quantity})


class WebhookSignatureError(ValidationError):
    pass


class NotFoundError(StoreError):
    status_code_default = 404


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(f"Produit {product_id} introuvable", extra={"productId": product_id})


class ProductUnavailable(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__("Produit introuvable ou inactif", extra={"productId": product_id})


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Commande introuvable", extra={"orderId": order_id})


class UserNotFound(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("Utilisateur introuvable", extra={"userId": user_id})


class ConflictError(StoreError):
    status_code_default = 409


class InsufficientStock(ConflictError):
    """Stock insuffisant: porte l'id produit et la quantité réellement disponible."""

    def __init__(self, product_id: str, available: int, requested: int, name: Optional[str] = None):
        label = name or product_id
        super().__init__(
            f"Stock insuffisant pour {label}: seulement {available} disponible(s)",
            status_code=400,
            extra={"productId": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class AlreadyPaid(ConflictError):
    def __init__(self, order_id: str):
        super().__init__("Commande déjà payée", extra={"orderId": order_id})


class AuthorizationError(StoreError):
    status_code_default = 403


class ExternalServiceError(StoreError):
    status_code_default = 502
