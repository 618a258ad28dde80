"""Identity & anonymity guard.

Moderators never see who filed a report, and never see who wrote an
anonymous post. The author of anonymous content is still needed to issue
strikes, so it travels inside the report as a Fernet token sealed with the
process-wide anonymity key from :class:`~workvoice.config.Settings`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from cryptography.fernet import Fernet, InvalidToken

from workvoice.moderation.errors import Unauthorized
from workvoice.moderation.models import (
    ANONYMOUS_AUTHOR,
    ANONYMOUS_REPORTER,
    UNKNOWN_AUTHOR,
    ContentReport,
)

if TYPE_CHECKING:
    from workvoice.auth.store import UserStore
    from workvoice.config import Settings
    from workvoice.content.store import Content

logger = logging.getLogger(__name__)


class IdentityGuard:
    """Resolves display identities and seals/reveals anonymous authors."""

    def __init__(self, settings: "Settings", users: Optional["UserStore"] = None) -> None:
        if settings.anonymity_key is not None:
            key = settings.anonymity_key.get_secret_value().encode()
        else:
            logger.warning(
                "No anonymity key configured; using an ephemeral key. "
                "Sealed author tokens will not survive a restart."
            )
            key = Fernet.generate_key()
        try:
            self._cipher = Fernet(key)
        except ValueError as e:
            # Do not echo the key itself.
            raise ValueError("Invalid anonymity key format") from e
        self._users = users

    # -- sealing ------------------------------------------------------------

    def seal_author(self, user_id: str) -> str:
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        return self._cipher.encrypt(user_id.encode()).decode()

    def reveal_author(self, token: str) -> str:
        """Recover the author id from a sealed token (enforcement only)."""
        try:
            return self._cipher.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise Unauthorized("Author token cannot be opened with the current key") from e

    def enforcement_author_id(self, report: ContentReport) -> str:
        """The real author id for strike/suspension enforcement, or ''."""
        if report.content_author_id:
            return report.content_author_id
        if report.content_author_token:
            return self.reveal_author(report.content_author_token)
        return ""

    # -- display ------------------------------------------------------------

    def resolve_author(self, content: Optional["Content"]) -> str:
        if content is None:
            return UNKNOWN_AUTHOR
        if content.is_anonymous:
            return ANONYMOUS_AUTHOR
        if self._users is not None:
            user = self._users.get_user(content.author_id)
            if user is not None:
                return user.display_name or user.username
        return UNKNOWN_AUTHOR

    @staticmethod
    def resolve_reporter(report: ContentReport) -> str:
        return ANONYMOUS_REPORTER
