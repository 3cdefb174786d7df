"""
Lance l'API boutique avec uvicorn: `python -m backend`.

Variables d'environnement:
- HOST / PORT: interface et port d'écoute (0.0.0.0:8000 par défaut)
- UVICORN_RELOAD: rechargement auto en dev ("1"/"true"/"yes")
- LOG_LEVEL: niveau de logs (uvicorn + loggers backend.*)
"""
import logging
import os

import uvicorn


def main() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info").lower()
    # Les loggers backend.* remontent vers le handler racine
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "backend.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
