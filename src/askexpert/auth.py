from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

API_KEY_ENV = "ASK_EXPERT_API_KEY"
_BEARER_PREFIX = "bearer "


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Per-invocation values handed from a transport to the tool handlers."""

    token: str | None = None

    @property
    def has_token(self) -> bool:
        return bool(self.token)


def bearer_token_from_header(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""
    if not header:
        logger.warning("No Authorization header found")
        return None
    if not header.lower().startswith(_BEARER_PREFIX):
        logger.warning("Authorization header is not a Bearer credential")
        return None
    token = header[len(_BEARER_PREFIX):].strip()
    if not token:
        logger.warning("Bearer token is empty")
        return None
    logger.debug("Bearer token received (length: %d)", len(token))
    return token


def token_from_env(env: Mapping[str, str] | None = None) -> str | None:
    env = os.environ if env is None else env
    token = (env.get(API_KEY_ENV) or "").strip()
    return token or None
