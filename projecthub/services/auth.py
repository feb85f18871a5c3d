"""Bearer token authentication for the HTTP API.

Tokens are optional at the transport level: a missing or invalid token yields no caller, and the access policy decides
whether the requested operation needs one.
"""

from typing import Optional

from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from projecthub.tracker import Caller, TrackerService

bearer_scheme = HTTPBearer(
    auto_error=False,
    scheme_name="Bearer",
    description="JWT Bearer token authentication. Format: Bearer <token>",
)


def get_service(request: Request) -> TrackerService:
    return request.app.state.service


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[Caller]:
    """Resolve the request's caller from its ``Authorization: Bearer <token>`` header.

    Returns:
        The caller the token identifies, or None when the header is absent or the token does not verify.
    """
    if credentials is None:
        return None
    return get_service(request).identity.caller_from_token(credentials.credentials)
