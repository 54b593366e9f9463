"""
Writes validated identity state into the caller's session.
"""

from shared.logging import get_logger, set_subject
from ..exchange import TokenSet
from ..validation import IdentityClaims
from .store import Session, SessionState


class SessionMaterializer:
    """Establishes a session from a token set and its validated claims."""

    def __init__(self):
        self.logger = get_logger("rp.session")

    def establish(self, session: Session, tokens: TokenSet, claims: IdentityClaims) -> SessionState:
        """Replace whatever the session held with ``tokens`` and ``claims``."""
        if not isinstance(claims, IdentityClaims):
            raise TypeError("establish() requires IdentityClaims produced by TokenValidator")

        state = SessionState(
            access_token=tokens.access_token,
            id_token=tokens.id_token,
            decoded_id_token=claims.to_dict(),
        )
        session.replace(state)

        set_subject(claims.subject)
        self.logger.info("Session established", mode=claims.mode.value)
        return state
