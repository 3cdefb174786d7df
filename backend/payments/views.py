import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.errors import WebhookSignatureError
from backend.utils.security import require_user
from backend.utils.rate_limit import optional_rate_limit
from backend.payments import membership as membership_service
from backend.payments import service as payments_service
from backend.payments import stripe_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class PaymentIntentRequest(BaseModel):
    orderId: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    paymentIntentId: Optional[str] = None
    orderId: Optional[str] = None


class MembershipIntentRequest(BaseModel):
    membershipType: Optional[str] = None


class MembershipConfirmRequest(BaseModel):
    paymentIntentId: Optional[str] = None


# module backend.payments.views
@router.post("/create-payment-intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intent(req: PaymentIntentRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée (ou réutilise) le PaymentIntent d'une commande carte de l'utilisateur.
    - Entrée JSON: {"orderId": "<id>"}
    - Montant: totalAmount de la commande (côté serveur)
    - Réponse: {clientSecret, paymentIntentId, orderId, orderNumber, amount, currency}
    - Erreurs: 404 commande, 403 autre utilisateur, 409 déjà payée, 502 Stripe
    """
    return payments_service.create_intent_for_order(user.get("id"), req.orderId)


@router.post("/confirm-payment", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def confirm_payment(req: ConfirmPaymentRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Confirmation client d'un paiement carte (alternative au webhook, idempotente).
    - Vérifie statut 'succeeded', propriétaire (metadata.userId) et commande (metadata.orderId)
    - Réponse: {success, message, order}
    """
    return payments_service.confirm_payment(user.get("id"), req.paymentIntentId, req.orderId)


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (PaymentIntents).
    - Signature invalide: 400, aucun changement d'état
    - Tout événement authentifié: 200 {"received": true}, y compris ignoré ou en erreur de
      traitement (journalisée); Stripe ne rejoue donc pas un événement déjà consommé
    """
    try:
        event = await stripe_client.parse_event(request)
    except WebhookSignatureError:
        raise
    except Exception:
        logger.exception("Erreur lecture webhook_stripe")
        raise WebhookSignatureError("Payload webhook invalide")

    try:
        result = await run_in_threadpool(payments_service.handle_event, event)
        logger.info("payments.webhook type=%s result=%s", event.get("type"), result.get("status"))
    except Exception:
        logger.exception("Erreur traitement webhook_stripe type=%s id=%s", event.get("type"), event.get("id"))
    return JSONResponse({"received": True})


@router.post("/membership/intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_membership_intent(req: MembershipIntentRequest, user: Dict[str, Any] = Depends(require_user)):
    return membership_service.create_membership_intent(user.get("id"), req.membershipType)


@router.post("/membership/confirm", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def confirm_membership(req: MembershipConfirmRequest, user: Dict[str, Any] = Depends(require_user)):
    return membership_service.confirm_membership(user.get("id"), req.paymentIntentId)
