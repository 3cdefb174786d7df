"""
Limitation de débit optionnelle (dépendance FastAPI).
- fastapi-limiter (Redis) lorsque le lifespan l'a initialisé
- fallback mémoire par processus si LOCAL_RATE_LIMIT_FALLBACK=1
- no-op si app.state.rate_limit_enabled vaut False (tests, Redis absent)
Clé: token (haché) de l'appelant puis IP, par chemin.
"""
from typing import Dict, Any
from urllib.parse import urlparse
import hashlib
import logging
import os
import time

from fastapi import Request, Response, HTTPException
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from backend.utils.security import extract_token

logger = logging.getLogger(__name__)


def _caller_key(request: Request) -> str:
    token = extract_token(request)
    path = request.url.path
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{path}"


def _local_hit(request: Request, times: int, seconds: int) -> None:
    now = time.time()
    key = _caller_key(request)
    # clé -> (fenêtre en secondes, horodatages des appels)
    store = getattr(request.app.state, "_rl_store", {})
    for stale in [k for k, (window, hits) in store.items() if not hits or now - hits[-1] >= window]:
        del store[stale]
    hits = [t for t in store.get(key, (seconds, []))[1] if now - t < seconds]
    allowed = len(hits) < times
    if allowed:
        hits.append(now)
    store[key] = (seconds, hits)
    request.app.state._rl_store = store
    if not allowed:
        raise HTTPException(status_code=429, detail="Too Many Requests")


def optional_rate_limit(times: int, seconds: int):
    async def _identifier(req: Request) -> str:
        return _caller_key(req)

    limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier)

    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, times, seconds)
            return
        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return
        if getattr(FastAPILimiter, "redis", None) is None:
            return
        try:
            await limiter(request, response)
        except HTTPException:
            raise
        except Exception:
            # Redis indisponible en cours de route: pas de 429 en prod
            logger.warning("rate limit check failed, request allowed path=%s", request.url.path)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": "redis" if limiter_ready else ("memory" if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1" else None),
    }
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if limiter_ready and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
