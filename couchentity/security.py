"""
Hashing and reversible encryption for entity properties.

A Security instance is built from an explicit secret key and handed to the
database, which passes it down to every property it constructs. There is no
process-wide security state.

Invariants:
    - hash() is deterministic: SHA-256 hex digest of the value's text
    - decrypt(encrypt(v)) == v for every JSON-serialisable v
    - None (and "" for hashing) pass through untouched so required checks
      still see an empty value

How to change safely:
    - Changing the hash function or key derivation invalidates every stored
      hashed/encrypted value; do it through a migration
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import TYPE_CHECKING, Any

from cryptography.fernet import Fernet, InvalidToken

from .errors import SecurityError

if TYPE_CHECKING:
    from .config import Settings


class Security:
    """Hash and encryption helpers bound to one secret key.

    Example:
        >>> security = Security("change-me")
        >>> token = security.encrypt({"pin": 1234})
        >>> security.decrypt(token)
        {'pin': 1234}
    """

    def __init__(self, secret_key: str | None = None) -> None:
        self._secret_key = secret_key
        self._fernet: Fernet | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Security:
        return cls(settings.secret_key)

    @property
    def can_encrypt(self) -> bool:
        return bool(self._secret_key)

    def hash(self, value: Any) -> Any:
        """One-way SHA-256 hash of a value's text form."""
        if value is None or value == "":
            return value
        return hashlib.sha256(str(value).encode("utf-8")).hexdigest()

    def encrypt(self, value: Any) -> str | None:
        """Encrypt a JSON-serialisable value into a Fernet token.

        Raises:
            SecurityError: If no secret key is configured
        """
        if value is None:
            return None
        payload = json.dumps(value).encode("utf-8")
        return self._get_fernet().encrypt(payload).decode("utf-8")

    def decrypt(self, token: str | None) -> Any:
        """Decrypt a token produced by encrypt().

        Raises:
            SecurityError: If no secret key is configured or the token is invalid
        """
        if token is None:
            return None
        try:
            payload = self._get_fernet().decrypt(str(token).encode("utf-8"))
        except InvalidToken as e:
            raise SecurityError("Cannot decrypt value: invalid token or wrong secret key") from e
        return json.loads(payload.decode("utf-8"))

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            if not self._secret_key:
                raise SecurityError("No secret key configured for encrypted properties")
            digest = hashlib.sha256(self._secret_key.encode("utf-8")).digest()
            self._fernet = Fernet(base64.urlsafe_b64encode(digest))
        return self._fernet
