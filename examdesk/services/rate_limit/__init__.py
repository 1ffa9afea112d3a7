from __future__ import annotations

import logging
from typing import Iterator

from fastapi import Depends, HTTPException, Request

from examdesk.connections.redis import get_redis
from examdesk.models.user import User
from examdesk.services.auth import get_current_user


logger = logging.getLogger(__name__)


def cooldown_key(email: str, path: str) -> str:
    return f"rl:{email}:{path}"


def limit_route(seconds: int):
    """Return a FastAPI dependency that gives each user a cooldown of N seconds per path.

    The cooldown key is claimed atomically (`SET NX EX`) before the handler
    runs and released again when the handler refuses the request with a
    4xx, so a corrected retry is not blocked by the rejected attempt.
    """

    def _dependency(request: Request, current_user: User = Depends(get_current_user)) -> Iterator[None]:
        client = get_redis()
        key = cooldown_key(current_user.email, request.url.path)

        if not client.set(key, "1", nx=True, ex=seconds):
            ttl = client.ttl(key)
            logger.warning("Rate limited %s on %s for %ss", current_user.email, request.url.path, ttl)
            raise HTTPException(status_code=429, detail=f"Rate limited. Try again in {max(ttl, 1)}s")

        try:
            yield
        except HTTPException as exc:
            if 400 <= exc.status_code < 500:
                client.delete(key)
            raise

    return _dependency
