# module backend.orders.models
"""Helpers purs pour les commandes (aucun accès base).
- Vocabulaire des statuts (commande, paiement) et moyens de paiement
- Validation du payload de checkout (articles, adresse, moyen de paiement, montants)
- Agrégation des quantités par produit, snapshot des lignes et calcul des totaux
- Sérialisation camelCase d'une ligne 'orders' pour l'API
"""
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone
import secrets
import time

from backend.errors import ValidationError

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
PAYMENT_STATUSES = ("Pending", "Completed", "Failed", "Refunded")
PAYMENT_METHODS = ("cod", "card")
# 'stripe' reste accepté (ancien client web)
PAYMENT_METHOD_ALIASES = {"stripe": "card"}

SHIPPING_FIELDS = ("fullName", "streetAddress", "city", "postalCode", "phone", "email")

# paymentDetails.status dans le vocabulaire du processeur
PROCESSOR_STATUS = {
    "Pending": "pending",
    "Completed": "succeeded",
    "Failed": "failed",
    "Refunded": "refunded",
}

TOTAL_TOLERANCE = 0.01


def generate_order_number() -> str:
    """ORD-<epoch ms>-<aléa>: l'unicité globale est garantie par la contrainte unique en base."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_payment_method(value: Any) -> str:
    method = str(value or "").strip().lower()
    method = PAYMENT_METHOD_ALIASES.get(method, method)
    if method not in PAYMENT_METHODS:
        raise ValidationError("Moyen de paiement invalide", extra={"paymentMethod": value})
    return method


def _to_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} invalide")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} invalide")


def _to_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("Chaque article doit avoir une quantité valide")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Chaque article doit avoir une quantité valide")
    if not number.is_integer() or number < 1:
        raise ValidationError("Chaque article doit avoir une quantité valide")
    return int(number)


def validate_shipping_address(address: Any) -> Dict[str, str]:
    """Tous les champs de l'adresse sont requis et non vides."""
    if not isinstance(address, dict) or not address:
        raise ValidationError("Adresse de livraison requise")
    cleaned: Dict[str, str] = {}
    missing = []
    for field in SHIPPING_FIELDS:
        value = str(address.get(field) or "").strip()
        if not value:
            missing.append(field)
        cleaned[field] = value
    if missing:
        raise ValidationError("Adresse de livraison incomplète", extra={"missing": missing})
    return cleaned


def parse_items(items: Any) -> List[Dict[str, Any]]:
    """
    Valide les lignes envoyées par le client.
    - Liste non vide
    - product (ou productId) requis, quantité entière >= 1, prix >= 0
    Retourne [{"productId", "quantity", "price"}].
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Les articles sont requis (liste non vide)")
    lines: List[Dict[str, Any]] = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Article invalide")
        product_id = str(item.get("product") or item.get("productId") or "").strip()
        if not product_id:
            raise ValidationError("Identifiant produit invalide", extra={"product": item.get("product")})
        quantity = _to_quantity(item.get("quantity"))
        price = _to_number(item.get("price"), "Prix de l'article")
        if price < 0:
            raise ValidationError("Chaque article doit avoir un prix valide")
        lines.append({"productId": product_id, "quantity": quantity, "price": price})
    return lines


def aggregate_quantities(lines: List[Dict[str, Any]]) -> Dict[str, int]:
    """Un même produit sur plusieurs lignes: quantités additionnées (ordre de première apparition)."""
    quantities: Dict[str, int] = {}
    for line in lines:
        pid = line["productId"]
        quantities[pid] = quantities.get(pid, 0) + int(line["quantity"])
    return quantities


def build_snapshot(products_by_id: Dict[str, Dict[str, Any]], quantities: Dict[str, int]) -> Tuple[List[Dict[str, Any]], float]:
    """
    Fige les lignes de la commande à partir des données produit courantes (nom, prix unitaire).
    Retourne (items, subtotal).
    """
    items: List[Dict[str, Any]] = []
    subtotal = 0.0
    for pid, qty in quantities.items():
        product = products_by_id[pid]
        unit_price = round(float(product.get("price") or 0), 2)
        items.append({
            "product": pid,
            "name": product.get("name") or "Article",
            "quantity": qty,
            "price": unit_price,
        })
        subtotal += unit_price * qty
    return items, round(subtotal, 2)


def resolve_delivery_charge(value: Any, default: float) -> float:
    if value is None or value == "":
        return round(float(default), 2)
    charge = _to_number(value, "deliveryCharge")
    if charge < 0:
        raise ValidationError("deliveryCharge invalide")
    return round(charge, 2)


def check_client_total(client_total: Any, computed_total: float) -> None:
    """Le total annoncé par le client doit correspondre au total recalculé côté serveur."""
    total = _to_number(client_total, "totalAmount")
    if total < 0:
        raise ValidationError("totalAmount invalide")
    if abs(total - computed_total) > TOTAL_TOLERANCE:
        raise ValidationError(
            "Le montant total ne correspond pas au contenu de la commande",
            extra={"totalAmount": total, "expectedTotal": computed_total},
        )


def initial_payment_state(method: str) -> Dict[str, Any]:
    """cod: payé d'office (Completed/Processing). card: en attente du processeur."""
    if method == "cod":
        return {
            "payment_status": "Completed",
            "status": "Processing",
            "payment_details": {"status": "cod", "method": "cod", "timestamp": now_iso()},
        }
    return {
        "payment_status": "Pending",
        "status": "Pending",
        "payment_details": {"status": PROCESSOR_STATUS["Pending"], "method": "card"},
    }


def format_order(row: Dict[str, Any], customer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Ligne 'orders' (snake_case) -> document API (camelCase)."""
    order_number = row.get("order_number") or row.get("id") or "N/A"
    return {
        "_id": row.get("id"),
        "id": row.get("id"),
        "orderNumber": order_number,
        "orderId": order_number,
        "customer": customer or {"_id": row.get("user_id")},
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
        "totalAmount": float(row.get("total_amount") or 0),
        "subtotal": float(row.get("subtotal") or 0),
        "deliveryCharge": float(row.get("delivery_charge") or 0),
        "status": row.get("status") or "Pending",
        "paymentStatus": row.get("payment_status") or "Pending",
        "paymentMethod": row.get("payment_method") or "N/A",
        "paymentDetails": row.get("payment_details") or {"status": PROCESSOR_STATUS["Pending"]},
        "paymentIntentId": row.get("payment_intent_id"),
        "shippingAddress": row.get("shipping_address") or {},
        "items": row.get("items") or [],
    }
