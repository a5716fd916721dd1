# pollbuddy/encryption/ballot_encryption.py
"""Ballot encryption with the election's RSA key pair.

Each ballot payload ``{voter_id, candidate_id, timestamp, election_id}`` is
serialized to JSON and encrypted with RSA-2048 using OAEP (MGF1/SHA-256)
padding. OAEP is randomized, so encrypting the same payload twice yields
different ciphertexts. Only the holder of the private key can decrypt; the
tally never needs to, decryption is for manual audit of single ballots.

Key lifetime:
- one key pair per election, held by a single service instance created at
  process start;
- ``load_or_generate(path)`` persists the private key as PKCS8 PEM so that
  ballots stay auditable across restarts. Without a path the key lives
  only as long as the process.

Exception hierarchy:
- EncryptFailed (pollbuddy.errors): payload could not be encrypted
- DecryptionError: base class for decryption failures
  - InvalidPackageError: not base64, or plaintext is not a JSON object
  - KeyDecryptionError: ciphertext does not open with this private key
"""

import base64
import json
import logging
import os

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from pollbuddy.errors import EncryptFailed

logger = logging.getLogger(__name__)

KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537


def _oaep():
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class BallotEncryptionService:
    def __init__(self, private_key=None):
        if private_key is None:
            private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=KEY_SIZE)
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def from_pem(cls, pem_str: str):
        return cls(serialization.load_pem_private_key(pem_str.encode(), password=None))

    @classmethod
    def load_or_generate(cls, path=None):
        """Key pair for the election; read from or written to ``path``."""
        if not path:
            logger.warning("ELECTION_PRIVATE_KEY_PATH not set; ballots are auditable only until restart")
            return cls()
        if os.path.exists(path):
            with open(path, 'r') as f:
                return cls.from_pem(f.read())
        service = cls()
        service.save_private_key(path)
        logger.info(f"Generated election key pair at {path}")
        return service

    def save_private_key(self, path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w') as f:
            f.write(self.get_private_key_pem())

    def get_public_key_pem(self) -> str:
        pem = self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def get_private_key_pem(self) -> str:
        pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        return pem.decode()

    def encrypt_vote(self, vote_data: dict) -> str:
        """Encrypt a ballot payload; raises EncryptFailed."""
        try:
            plaintext = json.dumps(vote_data, sort_keys=True).encode('utf-8')
            ciphertext = self.public_key.encrypt(plaintext, _oaep())
        except (TypeError, ValueError) as e:
            # TypeError: payload not JSON-serializable; ValueError: too long for OAEP
            logger.error(f"Ballot encryption failed: {e}")
            raise EncryptFailed()
        return base64.b64encode(ciphertext).decode()

    def decrypt_vote(self, encrypted_vote: str) -> dict:
        """Decrypt a stored ballot (audit only)."""
        try:
            ciphertext = base64.b64decode(encrypted_vote, validate=True)
        except Exception as e:
            raise InvalidPackageError(f"Invalid encrypted ballot: {e}")

        try:
            plaintext = self.private_key.decrypt(ciphertext, _oaep())
        except ValueError as e:
            raise KeyDecryptionError(f"Ballot does not open with this key: {e}")

        try:
            vote = json.loads(plaintext.decode('utf-8'))
        except ValueError as e:
            raise InvalidPackageError(f"Ballot plaintext is not JSON: {e}")
        if not isinstance(vote, dict):
            raise InvalidPackageError("Ballot plaintext is not a JSON object")
        return vote


class DecryptionError(Exception):
    """Base exception for ballot decryption failures."""
    pass


class InvalidPackageError(DecryptionError):
    """Raised when the stored ballot is malformed."""
    pass


class KeyDecryptionError(DecryptionError):
    """Raised when the ciphertext cannot be opened with the private key."""
    pass
