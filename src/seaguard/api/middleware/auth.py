"""JWT bearer authentication for the HTTP surface."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ...audit.ledger import AuditLedger
from ...config import get_settings
from ...models.audit import Principal

logger = logging.getLogger(__name__)


def extract_client_ip(request: Request) -> Optional[str]:
    """Client IP, honouring proxy headers.

    First entry of ``X-Forwarded-For``, then ``X-Real-IP``, then the
    socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def roles_from_claims(payload: Dict[str, Any]) -> List[str]:
    """Role claims from ``roles``, ``realm_access.roles`` or a single ``role``."""
    roles = payload.get("roles")
    if isinstance(roles, list):
        return [str(r) for r in roles]
    realm = payload.get("realm_access")
    if isinstance(realm, dict) and isinstance(realm.get("roles"), list):
        return [str(r) for r in realm["roles"]]
    role = payload.get("role")
    return [str(role)] if role else []


class JWTBearer(HTTPBearer):
    """HS256 bearer authentication yielding a ``Principal``.

    Every rejection schedules a FAILED_LOGIN audit entry without waiting
    for it, then raises the usual 403.
    """

    def __init__(
        self,
        ledger: Optional[AuditLedger] = None,
        secret: Optional[str] = None,
        audience: Optional[str] = None,
        auto_error: bool = True,
    ):
        super().__init__(auto_error=False)
        self.raise_on_failure = auto_error
        self.ledger = ledger
        if secret is None or audience is None:
            settings = get_settings()
            secret = secret if secret is not None else settings.jwt_secret
            audience = audience if audience is not None else settings.jwt_audience
        self.jwt_secret = secret
        self.audience = audience

    async def __call__(self, request: Request) -> Optional[Principal]:
        credentials: Optional[HTTPAuthorizationCredentials] = await super().__call__(request)

        if not credentials:
            return self._reject(request, "Missing authorization credentials", "Invalid authorization credentials")

        if credentials.scheme.lower() != "bearer":
            return self._reject(request, "Unsupported authentication scheme", "Invalid authentication scheme")

        payload = self._verify_jwt(credentials.credentials)
        if payload is None:
            return self._reject(request, "Invalid or expired token", "Invalid or expired token")

        return Principal(
            subject=str(payload.get("sub", "")),
            email=payload.get("email"),
            given_name=payload.get("given_name"),
            family_name=payload.get("family_name"),
            preferred_username=payload.get("preferred_username"),
            roles=roles_from_claims(payload),
            ip_address=extract_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    def _reject(self, request: Request, reason: str, detail: str) -> None:
        if self.ledger is not None:
            try:
                self.ledger.schedule_auth_failure(
                    reason,
                    ip_address=extract_client_ip(request),
                    user_agent=request.headers.get("user-agent"),
                )
            except Exception as e:
                logger.warning("Could not record auth failure (%s): %s", reason, e)
        if self.raise_on_failure:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return None

    def _verify_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        if not self.jwt_secret:
            logger.warning("JWT_SECRET is not configured; rejecting token")
            return None
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
            )
        except JWTError as e:
            logger.debug("Token rejected: %s", e)
            return None
        if not payload.get("sub"):
            return None
        return payload


def get_current_principal(bearer: JWTBearer):
    """Build a dependency returning the authenticated principal."""

    async def _dependency(principal: Principal = Depends(bearer)) -> Principal:
        return principal

    return _dependency
