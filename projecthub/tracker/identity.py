from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Optional

import jwt

from projecthub.core import ProjectHub
from projecthub.core.utils import ifnone
from projecthub.database import coerce_id
from projecthub.tracker.enums import UserType
from projecthub.tracker.models import User
from projecthub.tracker.policy import Caller


class IdentityProvider(ProjectHub):
    """Issues and reads signed session tokens.

    Tokens are JWTs whose ``data`` claim carries the user's ``_id``, ``email`` and ``type``. A token that is missing,
    malformed, expired or signed with another key yields no caller; the access policy then reports "not logged in".

    Args:
        secret: Signing key. Defaults to ``PROJECTHUB_AUTH.JWT_SECRET``.
        algorithm: JWT algorithm. Defaults to ``PROJECTHUB_AUTH.JWT_ALGORITHM``.
        expiration_hours: Token lifetime. Defaults to ``PROJECTHUB_AUTH.TOKEN_EXPIRATION_HOURS``.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expiration_hours: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        auth = self.settings.PROJECTHUB_AUTH
        self._secret = ifnone(secret, auth.JWT_SECRET.get_secret_value())
        self.algorithm = ifnone(algorithm, auth.JWT_ALGORITHM)
        self.expiration = timedelta(hours=ifnone(expiration_hours, auth.TOKEN_EXPIRATION_HOURS))

    def issue_token(self, user: User) -> str:
        now = datetime.now(UTC)
        payload: Dict[str, Any] = {
            "data": {"_id": str(user.id), "email": user.email, "type": user.type},
            "iat": int(now.timestamp()),
            "exp": int((now + self.expiration).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def caller_from_token(self, token: Optional[str]) -> Optional[Caller]:
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            self.logger.debug("Rejected expired token")
            return None
        except jwt.InvalidTokenError as e:
            self.logger.debug(f"Rejected invalid token: {e}")
            return None

        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        user_id = coerce_id(data.get("_id"))
        if user_id is None:
            return None
        role = data.get("type")
        return Caller(id=user_id, role=UserType(role) if role in UserType._value2member_map_ else None)
