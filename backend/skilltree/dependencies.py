"""
FastAPI Dependencies

Resolves the learner identity for every learner-scoped request. Identity
is established by the upstream gateway; this service only reads the
opaque id it forwards.
"""

from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from skilltree.middleware.error_handling import AuthenticationError, ValidationError

# Bearer scheme; the token is the opaque learner id
bearer_scheme = HTTPBearer(auto_error=False)

MAX_LEARNER_ID_LENGTH = 128


async def get_learner_id(
    x_learner_id: Optional[str] = Header(None, alias="X-Learner-Id"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    Resolve the learner id from the request.

    The id can be provided via:
    - X-Learner-Id header (preferred)
    - Authorization: Bearer <learner id>

    Returns:
        str: The learner id

    Raises:
        AuthenticationError: 401 if no learner id is present
        ValidationError: 422 if the learner id is longer than the store allows
    """
    learner_id = x_learner_id or (credentials.credentials if credentials else None)
    learner_id = learner_id.strip() if learner_id else ""

    if not learner_id:
        raise AuthenticationError(
            "Missing learner identity. Provide the X-Learner-Id header."
        )
    if len(learner_id) > MAX_LEARNER_ID_LENGTH:
        raise ValidationError(
            "Learner identity is too long",
            details={"max_length": MAX_LEARNER_ID_LENGTH},
        )

    return learner_id
