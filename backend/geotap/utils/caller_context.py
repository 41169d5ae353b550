"""Caller identity as asserted by the signed access token."""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask_jwt_extended import get_jwt, get_jwt_identity

from geotap.utils.errors import UnauthenticatedError
from geotap.utils.validators import MAX_IDENTIFIER_LENGTH

_TRUE_STRINGS = {'true', '1', 'yes'}

@dataclass(frozen=True)
class CallerContext:
    """Claims carried by the identity assertion.

    Every field is untrusted input. It is validated once here and then passed
    explicitly into the services that need it.
    """
    identity_id: str
    device_id: Optional[str]
    email_verified: bool

    @classmethod
    def from_claims(cls, identity: Any, claims: Mapping[str, Any]) -> 'CallerContext':
        """Build a context from a decoded token subject and its claims."""
        if not isinstance(identity, str) or not identity.strip():
            raise UnauthenticatedError('Identity assertion carries no subject')
        if len(identity.strip()) > MAX_IDENTIFIER_LENGTH:
            raise UnauthenticatedError('Identity assertion subject is too long')

        device_id = claims.get('device_id')
        if not isinstance(device_id, str) or not device_id.strip():
            device_id = None

        email_verified = claims.get('email_verified')
        if isinstance(email_verified, str):
            email_verified = email_verified.strip().lower() in _TRUE_STRINGS
        else:
            email_verified = email_verified is True

        return cls(
            identity_id=identity.strip(),
            device_id=device_id,
            email_verified=email_verified
        )

    @classmethod
    def from_request(cls) -> 'CallerContext':
        """Build a context from the JWT verified for the current request."""
        return cls.from_claims(get_jwt_identity(), get_jwt())
