"""
Clients Supabase partagés (singletons paresseux).
- get_supabase: client 'anon' (Auth GoTrue: résolution des access tokens)
- get_service_supabase: client service-role (écritures serveur: stock, commandes, panier, webhook)
Les repositories appellent ces fonctions via le module (supabase_client.get_...) pour rester patchables en tests.
"""
from typing import Dict
import logging

from supabase import create_client, Client
from backend.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

logger = logging.getLogger(__name__)

_clients: Dict[str, Client] = {}


def _client(role: str, key: str, env_name: str) -> Client:
    if role not in _clients:
        if not SUPABASE_URL or not key:
            raise RuntimeError(f"SUPABASE_URL/{env_name} manquants pour le client '{role}'")
        _clients[role] = create_client(SUPABASE_URL, key)
        logger.info("supabase client '%s' initialisé", role)
    return _clients[role]


def get_supabase() -> Client:
    return _client("anon", SUPABASE_ANON, "SUPABASE_ANON_KEY")


def get_service_supabase() -> Client:
    return _client("service", SUPABASE_SERVICE_KEY, "SUPABASE_SERVICE_KEY")
