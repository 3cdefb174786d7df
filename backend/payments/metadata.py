"""
Métadonnées des PaymentIntents: ce que le serveur y écrit et ce qu'il en relit.
- Commande: {"userId", "orderId", "orderNumber"}
- Abonnement: {"userId", "membershipType"}
"""
from typing import Any, Dict, Optional

# module backend.payments.metadata
def order_metadata(user_id: str, order: Dict[str, Any]) -> Dict[str, str]:
    return {
        "userId": str(user_id),
        "orderId": str(order.get("id")),
        "orderNumber": str(order.get("order_number") or ""),
    }


def membership_metadata(user_id: str, membership_type: str) -> Dict[str, str]:
    return {"userId": str(user_id), "membershipType": membership_type}


def intent_metadata(intent: Dict[str, Any]) -> Dict[str, Any]:
    return (intent or {}).get("metadata") or {}


def intent_from_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """event.data.object (PaymentIntent) ou {} si absent."""
    data_obj = ((event or {}).get("data") or {}).get("object") if isinstance(event, dict) else None
    return data_obj or {}


def owner_of(intent: Dict[str, Any]) -> Optional[str]:
    return intent_metadata(intent).get("userId")


def order_id_of(intent: Dict[str, Any]) -> Optional[str]:
    return intent_metadata(intent).get("orderId")


def membership_type_of(intent: Dict[str, Any]) -> Optional[str]:
    return intent_metadata(intent).get("membershipType")


def failure_message(intent: Dict[str, Any]) -> str:
    """Message d'erreur du dernier échec de paiement (last_payment_error.message)."""
    last_error = (intent or {}).get("last_payment_error") or {}
    return last_error.get("message") or "Paiement refusé"
