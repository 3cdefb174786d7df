# module backend.notifications.templates
"""Gabarits Jinja2 des e-mails de commande (HTML, autoescape actif)."""
from typing import Any, Dict
from jinja2 import DictLoader, Environment, select_autoescape

_ITEMS = """
<ul>
{% for item in order["items"] %}
  <li>{{ item.name or item.product }} (x{{ item.quantity }}) - {{ "%.2f"|format(item.price * item.quantity) }} {{ currency }}</li>
{% endfor %}
</ul>
"""

_ADDRESS = """
<p>{{ address.fullName }}<br>
   {{ address.streetAddress }}<br>
   {{ address.city }}, {{ address.postalCode }}{% if with_phone %}<br>
   Tél: {{ address.phone }}{% endif %}</p>
"""

ORDER_CONFIRMED = """
<h2>Confirmation de commande - {{ store_name }}</h2>
<p>Bonjour {{ user.name or "client" }},</p>
<p>Merci pour votre commande ! Votre commande #{{ order.orderNumber }} a bien été enregistrée.</p>
{% if is_member %}<p>Merci d'être membre ! Profitez de vos avantages sur votre prochain achat.</p>{% endif %}
<h3>Détail</h3>
{% include "items" %}
<p><strong>Sous-total:</strong> {{ "%.2f"|format(order.subtotal) }} {{ currency }}</p>
<p><strong>Livraison:</strong> {{ "%.2f"|format(order.deliveryCharge) }} {{ currency }}</p>
<p><strong>Total:</strong> {{ "%.2f"|format(order.totalAmount) }} {{ currency }}</p>
<h3>Adresse de livraison</h3>
{% with with_phone = True %}{% include "address" %}{% endwith %}
<p><strong>Paiement:</strong> {{ "Paiement à la livraison" if order.paymentMethod == "cod" else "Carte bancaire" }}</p>
<p>Nous vous préviendrons à chaque changement de statut.</p>
"""

ORDER_STATUS_CHANGED = """
<h2>Mise à jour de commande - {{ store_name }}</h2>
<p>Bonjour {{ user.name or "client" }},</p>
<p>Votre commande #{{ order.orderNumber }} est passée au statut <strong>{{ new_status }}</strong>.</p>
{% if is_member %}<p>En tant que membre, vous bénéficiez du support prioritaire.</p>{% endif %}
<h3>Détail</h3>
{% include "items" %}
<p><strong>Total:</strong> {{ "%.2f"|format(order.totalAmount) }} {{ currency }}</p>
<p><strong>Adresse de livraison:</strong></p>
{% with with_phone = False %}{% include "address" %}{% endwith %}
"""

env = Environment(
    loader=DictLoader({
        "items": _ITEMS,
        "address": _ADDRESS,
        "order_confirmed": ORDER_CONFIRMED,
        "order_status_changed": ORDER_STATUS_CHANGED,
    }),
    autoescape=select_autoescape(default=True, default_for_string=True),
)


def render(name: str, **context: Any) -> str:
    return env.get_template(name).render(**context)


def render_order_confirmed(order: Dict[str, Any], user: Dict[str, Any], store_name: str, currency: str) -> str:
    return render(
        "order_confirmed",
        order=order,
        user=user,
        address=order.get("shippingAddress") or {},
        is_member=_is_member(user),
        store_name=store_name,
        currency=currency.upper(),
    )


def render_order_status_changed(order: Dict[str, Any], user: Dict[str, Any], new_status: str, store_name: str, currency: str) -> str:
    return render(
        "order_status_changed",
        order=order,
        user=user,
        new_status=new_status,
        address=order.get("shippingAddress") or {},
        is_member=_is_member(user),
        store_name=store_name,
        currency=currency.upper(),
    )


def _is_member(user: Dict[str, Any]) -> bool:
    return bool((user.get("membership") or {}).get("isPro"))
