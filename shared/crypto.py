"""
Cryptography utilities for secure credential storage.

This module provides functions to encrypt and decrypt sensitive values
kept on disk, such as the API auth token.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import getpass
import logging
import platform
from typing import Optional

logger = logging.getLogger(__name__)

KEY_SALT = b'qingyu-salt-v1'


class CredentialManager:
    """Manager for encrypting/decrypting stored credentials."""

    @staticmethod
    def generate_key_from_password(password: str, salt: bytes) -> bytes:
        """
        Derive encryption key from password using PBKDF2.

        Args:
            password: Secret material
            salt: Salt bytes for key derivation

        Returns:
            Derived encryption key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    @staticmethod
    def generate_machine_key() -> bytes:
        """
        Generate a machine-specific encryption key.

        Uses the machine id and the current user so the key is stable
        across runs without asking for a password.
        """
        try:
            with open('/etc/machine-id', 'r') as f:
                machine_id = f.read().strip()
        except OSError:
            machine_id = platform.node() or 'default-machine'

        try:
            username = getpass.getuser()
        except (KeyError, OSError):
            username = 'default-user'

        return CredentialManager.generate_key_from_password(f"{machine_id}-{username}", KEY_SALT)

    @staticmethod
    def encrypt(data: str, key: Optional[bytes] = None) -> str:
        """
        Encrypt string data.

        Args:
            data: String to encrypt
            key: Encryption key (generates machine key if None)

        Returns:
            Base64-encoded encrypted string
        """
        if key is None:
            key = CredentialManager.generate_machine_key()

        encrypted = Fernet(key).encrypt(data.encode())
        return base64.urlsafe_b64encode(encrypted).decode()

    @staticmethod
    def decrypt(encrypted_data: str, key: Optional[bytes] = None) -> Optional[str]:
        """
        Decrypt encrypted string data.

        Returns:
            Decrypted string, or None if decryption fails
        """
        try:
            if key is None:
                key = CredentialManager.generate_machine_key()

            encrypted_bytes = base64.urlsafe_b64decode(encrypted_data.encode())
            return Fernet(key).decrypt(encrypted_bytes).decode()
        except (InvalidToken, ValueError) as e:
            logger.warning("Decryption failed: %s", e)
            return None
