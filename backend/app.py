# module backend.app
"""
Application FastAPI de la boutique: toute la configuration est dans backend.app_setup.
`app` est l'instance unique importée par backend.asgi et par les tests.
"""
import logging

from backend.app_setup.factory import create_app

logger = logging.getLogger(__name__)

# App globale
app = create_app()
