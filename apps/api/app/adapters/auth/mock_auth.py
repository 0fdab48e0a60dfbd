"""Mock auth verifier for local development and tests."""

from typing import get_args

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import AuthPrincipal, Role

_ROLES = frozenset(get_args(Role))


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>:<organization_id>``
    - ``test:<user_id>:<organization_id>:<role>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = [part.strip() for part in token.split(":")]
        if len(parts) not in (3, 4) or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id, organization_id = parts[1], parts[2]
        role = parts[3] if len(parts) == 4 else "AGENT"

        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")
        if not organization_id:
            raise AuthVerificationError("Bearer token missing organization")
        if role not in _ROLES:
            raise AuthVerificationError("Bearer token has unknown role")

        return AuthPrincipal(user_id=user_id, organization_id=organization_id, role=role)


__all__ = ["MockTokenVerifier"]
