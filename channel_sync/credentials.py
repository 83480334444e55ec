"""
Channel credential storage
Credentials are kept Fernet-encrypted in the connection row
"""

import json
from typing import Any, Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel

from channel_sync.contracts import CredentialError
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.credentials")


class ChannelCredentials(BaseModel):
    """Decrypted credential bundle for one channel connection"""

    username: str = ""
    password: str = ""
    hotel_id: str = ""
    api_endpoint: str = ""
    use_sandbox: bool = False

    # Unknown keys are preserved so admin-supplied extras survive a round trip
    model_config = {"extra": "allow", "coerce_numbers_to_str": True}

    def __repr__(self) -> str:
        return (
            f"ChannelCredentials(username={self.username!r}, "
            f"hotel_id={self.hotel_id!r}, use_sandbox={self.use_sandbox})"
        )

    __str__ = __repr__


class CredentialCipher:
    """Symmetric encryption of credential bundles"""

    def __init__(self, key: Union[str, bytes]):
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise CredentialError(f"Invalid credentials key: {e}")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, credentials: Union[ChannelCredentials, Dict[str, Any]]) -> str:
        if isinstance(credentials, ChannelCredentials):
            credentials = credentials.model_dump()
        try:
            payload = json.dumps(credentials, sort_keys=True).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CredentialError(f"Credentials are not serializable: {e}")
        return self._fernet.encrypt(payload).decode("ascii")

    def decrypt(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Decrypt a stored credential string.

        Empty input yields an empty dict. Plain JSON written by older
        installs is accepted as-is. Anything undecryptable yields an empty
        dict and a warning.
        """
        if not token:
            return {}

        stripped = token.strip()
        if stripped.startswith("{"):
            try:
                plain = json.loads(stripped)
            except ValueError:
                plain = None
            return plain if isinstance(plain, dict) else {}

        try:
            decrypted = self._fernet.decrypt(stripped.encode("ascii"))
        except (InvalidToken, ValueError):
            logger.warning("credential_decrypt_failed")
            return {}

        try:
            data = json.loads(decrypted.decode("utf-8"))
        except ValueError:
            logger.warning("credential_payload_invalid")
            return {}

        return data if isinstance(data, dict) else {}

    def load(self, token: Optional[str]) -> ChannelCredentials:
        return ChannelCredentials(**self.decrypt(token))
