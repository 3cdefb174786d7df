"""
Cas d'usage 'payments' (PaymentReconciler): orchestre commandes, Stripe, panier et notifications.

Deux déclencheurs indépendants peuvent régler la même commande:
- la confirmation client (confirm_payment), synchrone
- le webhook Stripe (handle_event), asynchrone
La transition Pending -> Completed est une mise à jour conditionnelle: un seul déclencheur
la gagne, et seul le gagnant vide le panier et envoie l'e-mail. L'autre est un no-op.

Machine à états paymentStatus:
- Pending -> Completed (terminal, idempotent; jamais pour une commande annulée)
- Failed -> Completed pour l'intent actif (même intent réussi après un refus)
- Pending -> Failed (statut commande inchangé, pas de remise en stock)
- Failed -> Pending via un nouvel intent (create_intent_for_order)
"""
from typing import Any, Dict, Optional, Tuple
import logging

from backend import config
from backend.errors import (
    AlreadyPaid,
    AuthorizationError,
    ConflictError,
    OrderNotFound,
    ValidationError,
)
from backend.cart import service as cart_service
from backend.notifications import service as notifications
from backend.orders import models as order_models
from backend.orders import repository as orders_repo
from . import membership
from . import metadata as meta
from . import stripe_client

logger = logging.getLogger(__name__)

# Intents encore utilisables côté client
REUSABLE_INTENT_STATUSES = (
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
    "requires_capture",
)


def _payment_details(intent: Dict[str, Any], error: Optional[str] = None) -> Dict[str, Any]:
    details: Dict[str, Any] = {
        "transactionId": intent.get("id"),
        "status": intent.get("status"),
        "method": "card",
        "amount": round(int(intent.get("amount_received") or intent.get("amount") or 0) / 100, 2),
        "currency": intent.get("currency") or config.STRIPE_CURRENCY,
        "timestamp": order_models.now_iso(),
    }
    if error:
        details["error"] = error
    return details


def _intent_response(order: Dict[str, Any], intent: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "clientSecret": intent.get("client_secret"),
        "paymentIntentId": intent.get("id"),
        "orderId": order.get("id"),
        "orderNumber": order.get("order_number"),
        "amount": order_models.format_order(order)["totalAmount"],
        "currency": intent.get("currency") or config.STRIPE_CURRENCY,
    }


def _owned_order(order_id: Optional[str], user_id: str) -> Dict[str, Any]:
    if not order_id:
        raise ValidationError("orderId requis")
    row = orders_repo.get_order(order_id)
    if not row:
        raise OrderNotFound(order_id)
    if row.get("user_id") != user_id:
        logger.warning("payments: order owner mismatch order_id=%s user_id=%s", order_id, user_id)
        raise AuthorizationError("Commande appartenant à un autre utilisateur")
    return row


def create_intent_for_order(user_id: str, order_id: Optional[str]) -> Dict[str, Any]:
    """
    Crée (ou réutilise) le PaymentIntent d'une commande carte de l'appelant.
    - Montant: totalAmount calculé côté serveur, jamais celui du client
    - Pending avec un intent encore utilisable: réutilisation
    - Failed: nouvel intent et retour à Pending (conditionné par Failed)
    """
    row = _owned_order(order_id, user_id)
    if row.get("payment_method") != "card":
        raise ValidationError("Commande non payable par carte", extra={"paymentMethod": row.get("payment_method")})
    if row.get("status") == "Cancelled":
        raise ConflictError("Commande annulée", extra={"orderId": row.get("id")})
    payment_status = row.get("payment_status")
    if payment_status == "Completed":
        raise AlreadyPaid(row.get("id"))
    if payment_status not in ("Pending", "Failed"):
        raise ConflictError(f"Paiement non modifiable (statut {payment_status})")

    previous_intent_id = row.get("payment_intent_id")
    if payment_status == "Pending" and previous_intent_id:
        current = stripe_client.retrieve_payment_intent(previous_intent_id)
        if current.get("status") in REUSABLE_INTENT_STATUSES:
            logger.info("payments.intent reuse order_id=%s intent=%s", row.get("id"), previous_intent_id)
            return _intent_response(row, current)
        if current.get("status") == "succeeded":
            raise ConflictError("Paiement déjà effectué, confirmation en cours", extra={"paymentIntentId": previous_intent_id})

    intent = stripe_client.create_payment_intent(
        amount=stripe_client.to_minor_units(row.get("total_amount") or 0),
        currency=config.STRIPE_CURRENCY,
        metadata=meta.order_metadata(user_id, row),
        description=f"Commande #{row.get('order_number')}",
        idempotency_key=f"order-{row.get('id')}-after-{previous_intent_id or 'none'}",
    )
    updated = orders_repo.attach_intent(row.get("id"), intent.get("id"), expected_payment_status=payment_status)
    if not updated:
        current_row = orders_repo.get_order(row.get("id")) or {}
        if current_row.get("payment_intent_id") != intent.get("id"):
            raise ConflictError("Paiement de la commande modifié simultanément, réessayez")
        updated = current_row
    logger.info(
        "payments.intent created order_id=%s intent=%s amount=%s previous=%s",
        row.get("id"), intent.get("id"), intent.get("amount"), previous_intent_id,
    )
    return _intent_response(updated, intent)


def settle_order_success(row: Dict[str, Any], intent: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Règle la commande pour un intent réussi.
    Retourne (ligne commande courante, True si CET appel a effectué la transition).
    Le gagnant vide le panier et notifie; ces effets sont best-effort.
    """
    details = _payment_details(intent)
    updated = None
    # Failed: le même intent peut réussir après un premier refus (nouvelle carte côté client)
    for expected in ("Pending", "Failed"):
        updated = orders_repo.mark_completed_if(row.get("id"), intent.get("id"), expected, details)
        if updated:
            break
    if not updated:
        current = orders_repo.get_order(row.get("id")) or row
        logger.info(
            "payments.settle noop order_id=%s payment_status=%s intent=%s",
            row.get("id"), current.get("payment_status"), intent.get("id"),
        )
        return current, False

    logger.info("payments.settle completed order_id=%s intent=%s", updated.get("id"), intent.get("id"))
    try:
        cart_service.clear_cart(updated.get("user_id"))
    except Exception:
        logger.exception("payments.settle: cart clear failed user_id=%s", updated.get("user_id"))
    notifications.dispatch_order_confirmed(order_models.format_order(updated), updated.get("user_id"))
    return updated, True


def settle_order_failure(row: Dict[str, Any], intent: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Pending -> Failed avec l'erreur du processeur. Ni statut commande ni stock modifiés."""
    details = _payment_details(intent, error=meta.failure_message(intent))
    updated = orders_repo.mark_failed_if_pending(row.get("id"), intent.get("id"), details)
    if not updated:
        logger.info("payments.failure noop order_id=%s payment_status=%s", row.get("id"), row.get("payment_status"))
        return row, False
    logger.warning("payments.failure order_id=%s intent=%s error=%s", row.get("id"), intent.get("id"), details.get("error"))
    return updated, True


def confirm_payment(user_id: str, payment_intent_id: Optional[str], order_id: Optional[str]) -> Dict[str, Any]:
    """
    Confirmation client (sans attendre le webhook).
    - 403 si la commande ou l'intent (metadata.userId) appartient à un autre utilisateur
    - 400 si l'intent ne correspond pas à la commande ou n'est pas 'succeeded'
    - 502 si Stripe est indisponible (aucune mutation)
    - Commande déjà réglée: succès sans nouvel effet
    - 409 si la commande a été annulée avant le règlement
    """
    if not payment_intent_id:
        raise ValidationError("paymentIntentId requis")
    row = _owned_order(order_id, user_id)

    intent = stripe_client.retrieve_payment_intent(payment_intent_id)
    if meta.owner_of(intent) != user_id:
        logger.warning("payments.confirm owner mismatch intent=%s user_id=%s", payment_intent_id, user_id)
        raise AuthorizationError("Paiement appartenant à un autre utilisateur")
    if meta.order_id_of(intent) != str(row.get("id")):
        raise ValidationError("Le paiement ne correspond pas à cette commande", extra={"paymentIntentId": payment_intent_id})

    if row.get("payment_status") == "Completed":
        return {"success": True, "message": "Paiement déjà confirmé", "order": order_models.format_order(row)}

    if intent.get("status") != "succeeded":
        raise ValidationError("Paiement non abouti", extra={"status": intent.get("status")})
    if row.get("payment_intent_id") != payment_intent_id:
        raise ConflictError("Ce paiement a été remplacé par une nouvelle tentative", extra={"paymentIntentId": payment_intent_id})

    current, won = settle_order_success(row, intent)
    if won:
        return {"success": True, "message": "Paiement confirmé", "order": order_models.format_order(current)}
    if current.get("payment_status") != "Completed":
        # Transition refusée sans règlement concurrent: commande annulée entre-temps
        logger.warning(
            "payments.confirm not settled order_id=%s status=%s payment_status=%s",
            current.get("id"), current.get("status"), current.get("payment_status"),
        )
        if current.get("status") == "Cancelled":
            raise ConflictError("Commande annulée", extra={"orderId": current.get("id")})
        raise ConflictError("Paiement non réglable pour cette commande", extra={"orderId": current.get("id")})
    return {"success": True, "message": "Paiement déjà confirmé", "order": order_models.format_order(current)}


def _order_for_intent(intent: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    row = orders_repo.get_order_by_intent(intent.get("id"))
    if row:
        return row
    stale = orders_repo.get_order(meta.order_id_of(intent))
    if stale:
        logger.warning(
            "payments.webhook stale intent=%s order_id=%s active_intent=%s",
            intent.get("id"), stale.get("id"), stale.get("payment_intent_id"),
        )
    else:
        logger.warning("payments.webhook no order for intent=%s", intent.get("id"))
    return None


def handle_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà authentifié.
    - payment_intent.succeeded: abonnement (metadata.membershipType) ou commande
    - payment_intent.payment_failed: commande -> Failed
    - autres types: ignorés
    Retour: {"status": "processed" | "noop" | "ignored"}
    """
    event_type = (event or {}).get("type")
    intent = meta.intent_from_event(event)
    logger.info("payments.webhook event=%s id=%s intent=%s", event_type, (event or {}).get("id"), intent.get("id"))

    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        return {"status": "ignored"}

    if meta.membership_type_of(intent):
        if event_type == "payment_intent.succeeded":
            _, applied = membership.settle_membership(intent)
            return {"status": "processed" if applied else "noop"}
        logger.warning("payments.webhook membership payment failed intent=%s error=%s", intent.get("id"), meta.failure_message(intent))
        return {"status": "processed"}

    row = _order_for_intent(intent)
    if not row:
        return {"status": "ignored"}
    if event_type == "payment_intent.succeeded":
        _, won = settle_order_success(row, intent)
    else:
        _, won = settle_order_failure(row, intent)
    return {"status": "processed" if won else "noop"}
