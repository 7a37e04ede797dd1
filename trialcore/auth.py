"""Session cookie authentication: cookie "session" = "session-token-<user id>"."""
import logging
from typing import Dict, Mapping, Optional

from engine import SESSION_COOKIE, SESSION_TOKEN_PREFIX
from trialcore.errors import DataStoreError, NotAuthenticated

logger = logging.getLogger(__name__)


def user_id_from_cookie(value: Optional[str]) -> Optional[str]:
    if not value or not value.startswith(SESSION_TOKEN_PREFIX):
        return None
    user_id = value[len(SESSION_TOKEN_PREFIX):].strip()
    return user_id or None


def get_current_user(store, cookies: Mapping[str, str]) -> Dict:
    """Resolve the logged-in user from request cookies. Raises NotAuthenticated."""
    user_id = user_id_from_cookie(cookies.get(SESSION_COOKIE))
    if user_id is None:
        raise NotAuthenticated("Not authenticated")
    try:
        user = store.get_user(user_id)
    except DataStoreError as e:
        raise NotAuthenticated("User could not be verified") from e
    if not user:
        logger.warning(f"Session cookie for unknown user {user_id}")
        raise NotAuthenticated("User not found")
    return user
