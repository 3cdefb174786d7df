"""
Adaptateur Stripe (PaymentIntents + webhooks): centralise les appels et la configuration Stripe.
- Appels bornés: timeout HTTP (STRIPE_TIMEOUT_SECONDS) et retries réseau (STRIPE_MAX_NETWORK_RETRIES)
- Les erreurs Stripe sont converties en ExternalServiceError (502): l'appelant n'a rien muté
- Les objets Stripe sont convertis en dict pour le reste du code
"""
import json
import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import Request

from backend import config
from backend.errors import ExternalServiceError, ValidationError, WebhookSignatureError

logger = logging.getLogger(__name__)


# module backend.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - Borne chaque appel (timeout client HTTP + retries réseau).
    """
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    stripe.max_network_retries = config.STRIPE_MAX_NETWORK_RETRIES
    if not isinstance(stripe.default_http_client, stripe.RequestsClient):
        stripe.default_http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)
    return stripe


def _to_dict(obj: Any) -> Dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def to_minor_units(amount: float) -> int:
    """Montant en unités de devise -> centimes (arrondi au plus proche)."""
    return int(round(float(amount) * 100))


def create_payment_intent(
    *,
    amount: int,
    currency: str,
    metadata: Dict[str, str],
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent.
    - amount: en centimes
    - metadata: ex {"userId": "...", "orderId": "...", "orderNumber": "..."}
    Retour: dict intent incluant "id", "client_secret", "status".
    """
    require_stripe()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount,
            currency=currency,
            metadata=metadata,
            description=description,
            automatic_payment_methods={"enabled": True},
            idempotency_key=idempotency_key,
        )
    except stripe.StripeError as e:
        logger.exception("stripe.create_payment_intent failed")
        raise ExternalServiceError(f"Erreur du prestataire de paiement: {getattr(e, 'user_message', None) or e}")
    return _to_dict(intent)


def retrieve_payment_intent(payment_intent_id: str) -> Dict[str, Any]:
    """Lit un PaymentIntent par identifiant (statut, montant, devise, metadata)."""
    require_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError as e:
        logger.warning("stripe.retrieve_payment_intent invalid id=%s: %s", payment_intent_id, e)
        raise ValidationError("PaymentIntent introuvable", extra={"paymentIntentId": payment_intent_id})
    except stripe.StripeError as e:
        logger.exception("stripe.retrieve_payment_intent failed id=%s", payment_intent_id)
        raise ExternalServiceError(f"Erreur du prestataire de paiement: {getattr(e, 'user_message', None) or e}")
    return _to_dict(intent)


def construct_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Vérifie la signature (Stripe-Signature + STRIPE_WEBHOOK_SECRET) puis retourne l'événement en dict.
    Lève WebhookSignatureError (400) si la signature ou le payload est invalide.
    """
    if not sig_header or not config.STRIPE_WEBHOOK_SECRET:
        raise WebhookSignatureError("Signature webhook manquante")
    try:
        stripe.Webhook.construct_event(payload, sig_header, config.STRIPE_WEBHOOK_SECRET)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("stripe.webhook signature rejected: %s", e)
        raise WebhookSignatureError("Signature webhook invalide")
    return json.loads(payload)


async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    Retour: l'événement (dict) si la signature est valide.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return construct_event(payload, sig_header)
