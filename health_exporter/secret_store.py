"""
Secret stores for destination credentials.

Provides an in-memory store and a file store that encrypts every secret at
rest using Fernet (symmetric encryption).
"""

import base64
import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from health_exporter.telemetry.schemas import BasicAuthCredential

logger = logging.getLogger(__name__)


# Environment variables read by SecretEncryption.from_environment()
KEY_ENV = "HEALTH_EXPORTER_ENCRYPTION_KEY"
PASSPHRASE_ENV = "HEALTH_EXPORTER_SECRET"
SALT_ENV = "HEALTH_EXPORTER_ENCRYPTION_SALT"

MIN_SALT_LENGTH = 16
KDF_ITERATIONS = 100000


class SecretEncryption:
    """Fernet cipher for secrets stored at rest."""

    def __init__(self, key: Union[str, bytes]):
        """
        Args:
            key: Base64 encoded Fernet key

        Raises:
            ValueError: If key is not a valid Fernet key
        """
        self.cipher = Fernet(key.encode() if isinstance(key, str) else key)

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: str) -> "SecretEncryption":
        """Derive the Fernet key from a passphrase with PBKDF2-SHA256."""
        if len(salt) < MIN_SALT_LENGTH:
            raise ValueError(f"Encryption salt must be at least {MIN_SALT_LENGTH} characters long")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=KDF_ITERATIONS,
        )
        return cls(base64.urlsafe_b64encode(kdf.derive(passphrase.encode())))

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "SecretEncryption":
        """
        Build the cipher from environment variables.

        An explicit key wins; otherwise the key is derived from the
        passphrase and salt variables.

        Raises:
            ValueError: If neither a key nor a passphrase with salt is set
        """
        environ = os.environ if environ is None else environ

        key = environ.get(KEY_ENV)
        if key:
            return cls(key)

        passphrase = environ.get(PASSPHRASE_ENV)
        salt = environ.get(SALT_ENV)
        missing = [
            name for name, value in ((PASSPHRASE_ENV, passphrase), (SALT_ENV, salt)) if not value
        ]
        if missing:
            error_msg = f"Secret encryption needs {KEY_ENV} or {' and '.join(missing)}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.warning(f"Using derived encryption key. Set {KEY_ENV} for production.")
        return cls.from_passphrase(passphrase, salt)

    def encrypt(self, secret: str) -> str:
        """
        Encrypt a secret.

        Args:
            secret: Plain text secret

        Returns:
            Fernet token
        """
        return self.cipher.encrypt(secret.encode()).decode()

    def decrypt(self, token: str) -> str:
        """
        Decrypt a secret.

        Args:
            token: Fernet token produced by encrypt()

        Returns:
            Plain text secret

        Raises:
            ValueError: If token is empty
            cryptography.fernet.InvalidToken: If decryption fails
        """
        if not token:
            raise ValueError("Empty token provided")
        return self.cipher.decrypt(token.encode()).decode()


class InMemorySecretStore:
    """SecretStore kept in process memory."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._secrets: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._secrets.get(key)

    def put(self, key: str, secret: str) -> None:
        self._secrets[key] = secret

    def delete(self, key: str) -> None:
        self._secrets.pop(key, None)


class EncryptedFileSecretStore:
    """SecretStore persisted as a JSON file of Fernet tokens."""

    def __init__(self, path: Union[str, Path], encryption: Optional[SecretEncryption] = None):
        """
        Initialize the store.

        Args:
            path: JSON file holding the encrypted secrets
            encryption: Cipher wrapper, derived from environment when omitted
        """
        self.path = Path(path)
        self.encryption = encryption or SecretEncryption.from_environment()
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read secret store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(".tmp")
        temp_file.write_text(json.dumps(data, indent=2, sort_keys=True))
        os.chmod(temp_file, 0o600)
        temp_file.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        token = self._read_all().get(key)
        if not token:
            return None
        try:
            return self.encryption.decrypt(token)
        except (InvalidToken, ValueError) as e:
            logger.error(f"Failed to decrypt secret {key}: {type(e).__name__}")
            return None

    def put(self, key: str, secret: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = self.encryption.encrypt(secret)
            self._write_all(data)
        logger.info(f"Secret {key} saved")

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if data.pop(key, None) is not None:
                self._write_all(data)
                logger.info(f"Secret {key} deleted")


def parse_basic_auth(secret: Optional[str]) -> Optional[BasicAuthCredential]:
    """
    Split a stored ``username:password`` secret.

    Only the first colon separates the fields so passwords may contain colons.
    Returns None for missing or malformed secrets.
    """
    if not secret or ":" not in secret:
        return None
    username, password = secret.split(":", 1)
    if not username or not password:
        return None
    return BasicAuthCredential(username=username, password=password)
