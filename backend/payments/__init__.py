"""
Module 'payments' (feature-first): point d'entrée public.
Réunit l'adaptateur Stripe, les métadonnées d'intent, le réconciliateur de commandes et les abonnements.
"""

from .metadata import intent_from_event, order_metadata, membership_metadata
from .stripe_client import require_stripe, create_payment_intent, retrieve_payment_intent, construct_event, parse_event
from .service import create_intent_for_order, confirm_payment, handle_event, settle_order_success, settle_order_failure
from .membership import create_membership_intent, confirm_membership, settle_membership

__all__ = [
    # metadata
    "intent_from_event",
    "order_metadata",
    "membership_metadata",
    # stripe
    "require_stripe",
    "create_payment_intent",
    "retrieve_payment_intent",
    "construct_event",
    "parse_event",
    # réconciliation commandes
    "create_intent_for_order",
    "confirm_payment",
    "handle_event",
    "settle_order_success",
    "settle_order_failure",
    # abonnements
    "create_membership_intent",
    "confirm_membership",
    "settle_membership",
]
