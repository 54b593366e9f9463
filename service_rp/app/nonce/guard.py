"""
Nonce guard: one-time values binding an authorization request to its callback.
"""

import hmac
import secrets
import threading
import time
from typing import Callable, Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, TimestampSigner
from starlette.responses import Response

from shared.logging import get_logger

NONCE_BYTES = 16


def nonces_match(a: str, b: str) -> bool:
    """Constant-time nonce comparison that accepts any unicode input."""
    return hmac.compare_digest(a.encode("utf-8", "surrogatepass"), b.encode("utf-8", "surrogatepass"))


class ConsumedNonceRegistry:
    """Remembers consumed nonces until their cookie could no longer be valid.

    Deleting the cookie only helps a well-behaved browser; the registry makes
    a replayed cookie fail as well.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def claim(self, nonce: str) -> bool:
        """Mark ``nonce`` consumed. False if it already was."""
        now = self._clock()
        with self._lock:
            self._purge(now)
            if nonce in self._entries:
                return False
            self._entries[nonce] = now + self.ttl
            return True

    def _purge(self, now: float) -> None:
        expired = [nonce for nonce, expires_at in self._entries.items() if expires_at <= now]
        for nonce in expired:
            del self._entries[nonce]

    def __len__(self) -> int:
        return len(self._entries)


class NonceGuard:
    """Issues nonces in signed, time-bounded, HTTP-only cookies and consumes them once."""

    def __init__(self,
                 secret: str,
                 cookie_name: str = "oidc-nonce",
                 max_age: int = 900,
                 secure: bool = False,
                 samesite: str = "lax",
                 clock: Callable[[], float] = time.time):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure
        self.samesite = samesite
        self._signer = TimestampSigner(secret, salt="oidc-nonce")
        # itsdangerous timestamps have one-second resolution
        self._consumed = ConsumedNonceRegistry(ttl=max_age + 1, clock=clock)
        self.logger = get_logger("rp.nonce")

    def generate(self) -> str:
        return secrets.token_hex(NONCE_BYTES)

    def sign(self, nonce: str) -> str:
        return self._signer.sign(nonce).decode("utf-8")

    def issue(self, response: Response) -> str:
        """Create a nonce and attach it to ``response`` as a signed cookie."""
        nonce = self.generate()
        response.set_cookie(
            self.cookie_name,
            self.sign(nonce),
            max_age=self.max_age,
            httponly=True,
            secure=self.secure,
            samesite=self.samesite,
        )
        return nonce

    def consume(self, cookie_value: Optional[str]) -> Optional[str]:
        """Return the nonce carried by ``cookie_value`` and burn it.

        Returns None when the cookie is missing, tampered with, expired or was
        already consumed.
        """
        if not cookie_value:
            self.logger.warning("Nonce cookie missing")
            return None

        try:
            nonce = self._signer.unsign(cookie_value, max_age=self.max_age).decode("utf-8")
        except SignatureExpired:
            self.logger.warning("Nonce cookie expired")
            return None
        except BadSignature:
            self.logger.warning("Nonce cookie signature invalid")
            return None

        if not self._consumed.claim(nonce):
            self.logger.warning("Nonce replayed")
            return None
        return nonce

    def verify_and_consume(self, cookie_value: Optional[str], presented_nonce: Optional[str]) -> bool:
        """Compare the cookie's nonce with ``presented_nonce``; the cookie nonce is burnt either way."""
        expected = self.consume(cookie_value)
        if expected is None or not presented_nonce:
            return False
        return nonces_match(expected, presented_nonce)

    def clear(self, response: Response) -> None:
        """Remove the nonce cookie from the browser."""
        response.delete_cookie(
            self.cookie_name,
            httponly=True,
            secure=self.secure,
            samesite=self.samesite,
        )
