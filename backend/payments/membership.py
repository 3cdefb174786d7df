"""
Abonnements (membre 'Pro'): achat par PaymentIntent, réglé par la confirmation client ou le webhook.
- Tarifs: MEMBERSHIP_PRICES (monthly | annual)
- Règlement idempotent: users.membership_ref retient l'intent appliqué; l'écriture est
  conditionnée par l'ancienne valeur, un même intent n'est donc appliqué qu'une fois.
"""
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timezone
import calendar
import logging

from backend import config
from backend.errors import AuthorizationError, ConflictError, UserNotFound, ValidationError
from backend.users import repository as users_repo
from . import metadata as meta
from . import stripe_client

logger = logging.getLogger(__name__)

MEMBERSHIP_TYPES = ("monthly", "annual")


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_active(membership: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    membership = membership or {}
    end = _parse_date(membership.get("endDate"))
    return bool(membership.get("isPro")) and end is not None and end > (now or datetime.now(timezone.utc))


def build_membership(membership_type: str, intent_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    start = now or datetime.now(timezone.utc)
    end = _add_months(start, 12 if membership_type == "annual" else 1)
    return {
        "isPro": True,
        "membershipType": membership_type,
        "paymentStatus": "Completed",
        "orderRefNum": intent_id,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
    }


def create_membership_intent(user_id: str, membership_type: Optional[str]) -> Dict[str, Any]:
    """PaymentIntent d'abonnement; 400 si type invalide ou abonnement déjà actif."""
    if membership_type not in MEMBERSHIP_TYPES:
        raise ValidationError("Type d'abonnement invalide ou manquant", extra={"membershipType": membership_type})
    user = users_repo.get_user_by_id(user_id)
    if not user:
        raise UserNotFound(user_id)
    if is_active(user.get("membership")):
        raise ValidationError("Abonnement déjà actif")

    amount = config.MEMBERSHIP_PRICES[membership_type]
    intent = stripe_client.create_payment_intent(
        amount=stripe_client.to_minor_units(amount),
        currency=config.STRIPE_CURRENCY,
        metadata=meta.membership_metadata(user_id, membership_type),
        description=f"Abonnement {membership_type}",
    )
    logger.info("membership.intent user_id=%s type=%s intent=%s", user_id, membership_type, intent.get("id"))
    return {
        "success": True,
        "clientSecret": intent.get("client_secret"),
        "paymentIntentId": intent.get("id"),
        "membershipType": membership_type,
        "amount": amount,
        "currency": config.STRIPE_CURRENCY,
    }


def settle_membership(intent: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Applique l'abonnement porté par un intent réussi.
    Retourne (membership courant, True si CET appel l'a appliqué).
    """
    user_id = meta.owner_of(intent)
    membership_type = meta.membership_type_of(intent)
    if membership_type not in MEMBERSHIP_TYPES:
        raise ValidationError("Type d'abonnement invalide", extra={"membershipType": membership_type})
    user = users_repo.get_user_by_id(user_id)
    if not user:
        logger.warning("membership.settle user not found user_id=%s intent=%s", user_id, intent.get("id"))
        raise UserNotFound(user_id)

    if user.get("membership_ref") == intent.get("id"):
        return user.get("membership") or {}, False

    membership = build_membership(membership_type, intent.get("id"))
    updated = users_repo.set_membership_if_ref(user_id, user.get("membership_ref"), membership, intent.get("id"))
    if not updated:
        current = users_repo.get_user_by_id(user_id) or {}
        if current.get("membership_ref") == intent.get("id"):
            return current.get("membership") or {}, False
        raise ConflictError("Abonnement modifié simultanément, réessayez")
    logger.info("membership.settle applied user_id=%s type=%s intent=%s", user_id, membership_type, intent.get("id"))
    return membership, True


def confirm_membership(user_id: str, payment_intent_id: Optional[str]) -> Dict[str, Any]:
    if not payment_intent_id:
        raise ValidationError("paymentIntentId requis")
    intent = stripe_client.retrieve_payment_intent(payment_intent_id)
    if meta.owner_of(intent) != user_id:
        raise AuthorizationError("Paiement appartenant à un autre utilisateur")
    if not meta.membership_type_of(intent):
        raise ValidationError("Ce paiement ne concerne pas un abonnement")
    if intent.get("status") != "succeeded":
        raise ValidationError("Paiement non abouti", extra={"status": intent.get("status")})
    membership, applied = settle_membership(intent)
    return {
        "success": True,
        "message": "Abonnement activé" if applied else "Abonnement déjà activé",
        "membership": membership,
    }
