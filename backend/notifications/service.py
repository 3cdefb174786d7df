"""
NotificationDispatcher: e-mails de commande envoyés APRÈS la transition qui fait foi.

Fire-and-forget: toute erreur (utilisateur introuvable, rendu, SMTP) est journalisée et
avalée; les fonctions retournent True si l'e-mail est parti, False sinon. Un échec ici ne
doit jamais annuler un paiement réglé ni une commande créée.
"""
from typing import Any, Dict, Optional
import logging

from backend import config
from backend.infra import mailer
from backend.notifications import templates
from backend.users import repository as users_repo

logger = logging.getLogger(__name__)


def notify_order_confirmed(order: Dict[str, Any], user: Dict[str, Any]) -> bool:
    """E-mail de confirmation (commande COD créée ou paiement carte réglé)."""
    try:
        if not mailer.is_configured():
            logger.info("notify_order_confirmed skipped (SMTP non configuré) order=%s", order.get("orderNumber"))
            return False
        html = templates.render_order_confirmed(order, user, config.STORE_NAME, config.STRIPE_CURRENCY)
        mailer.send_email(user.get("email"), f"Confirmation de commande - #{order.get('orderNumber')}", html)
        return True
    except Exception:
        logger.exception("notify_order_confirmed failed order=%s", order.get("orderNumber"))
        return False


def notify_order_status_changed(order: Dict[str, Any], user: Dict[str, Any], new_status: str) -> bool:
    try:
        if not mailer.is_configured():
            logger.info("notify_order_status_changed skipped (SMTP non configuré) order=%s", order.get("orderNumber"))
            return False
        html = templates.render_order_status_changed(order, user, new_status, config.STORE_NAME, config.STRIPE_CURRENCY)
        mailer.send_email(
            user.get("email"),
            f"Commande #{order.get('orderNumber')}: {new_status}",
            html,
        )
        return True
    except Exception:
        logger.exception("notify_order_status_changed failed order=%s", order.get("orderNumber"))
        return False


def _load_recipient(user_id: Optional[str]) -> Optional[Dict[str, Any]]:
    try:
        user = users_repo.get_user_by_id(user_id)
    except Exception:
        logger.exception("notifications: lecture utilisateur impossible user_id=%s", user_id)
        return None
    if not user or not user.get("email"):
        logger.warning("notifications: destinataire introuvable user_id=%s", user_id)
        return None
    return user


def dispatch_order_confirmed(order: Dict[str, Any], user_id: Optional[str]) -> bool:
    """Charge le destinataire puis envoie la confirmation (best-effort)."""
    user = _load_recipient(user_id)
    if not user:
        return False
    return notify_order_confirmed(order, user)


def dispatch_order_status_changed(order: Dict[str, Any], user_id: Optional[str], new_status: str) -> bool:
    user = _load_recipient(user_id)
    if not user:
        return False
    return notify_order_status_changed(order, user, new_status)
