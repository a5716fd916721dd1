# pollbuddy/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization

from pollbuddy.database.models import utcnow

# Append-only election audit trail: JSON lines, SHA-256 hash chain, one
# Ed25519 signature per entry. Voter identities are stored hashed.

logger = logging.getLogger(__name__)


def load_signing_key(path=None):
    """Ed25519 key for signing entries, kept at ``path`` across restarts."""
    if not path:
        return Ed25519PrivateKey.generate()
    if os.path.exists(path):
        with open(path, 'rb') as f:
            return serialization.load_pem_private_key(f.read(), password=None)
    key = Ed25519PrivateKey.generate()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()))
    return key


class ElectionAuditLog:
    def __init__(self, log_dir='logs', election_id='election', signing_key=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.election_id = election_id
        self.previous_hash = None

        os.makedirs(log_dir, exist_ok=True)

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        last_line = None
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    last_line = line
        if last_line is None:
            return
        try:
            self.previous_hash = json.loads(last_line).get('hash')
        except ValueError:
            logger.error(f"Audit log tail is not JSON: {self.log_file}")
            self.previous_hash = None

    def hash_identity(self, telegram_id):
        """Stable per-election pseudonym for a user id."""
        if telegram_id is None:
            return None
        digest = hashlib.sha256(f"{self.election_id}:{telegram_id}".encode()).digest()
        return base64.b64encode(digest).decode()

    def public_key_pem(self) -> str:
        pem = self.signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def record(self, event_type, data, actor=None):
        """Append one signed entry. Audit failures never abort the caller."""
        try:
            log_entry = {
                "timestamp": utcnow().isoformat(),
                "election_id": self.election_id,
                "event_type": event_type,
                "data": data,
                "actor": self.hash_identity(actor),
                "previous_hash": self.previous_hash,
            }
            entry_json = json.dumps(log_entry, sort_keys=True)
            entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
            signature = self.signing_key.sign(entry_json.encode())

            log_entry['hash'] = entry_hash
            log_entry['signature'] = base64.b64encode(signature).decode()

            with open(self.log_file, 'a') as f:
                f.write(json.dumps(log_entry, sort_keys=True) + "\n")

            self.previous_hash = entry_hash
            return log_entry
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Audit log error for {event_type}: {e}")
            return None

    def entries(self):
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r') as f:
            return [json.loads(line) for line in f if line.strip()]

    def verify_chain(self):
        """True when every entry links to its predecessor and its hash and
        signature match its content."""
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            for log_entry in self.entries():
                if log_entry.get('previous_hash') != previous_hash:
                    return False
                body = dict(log_entry)
                entry_hash = body.pop('hash')
                signature = base64.b64decode(body.pop('signature'))
                entry_json = json.dumps(body, sort_keys=True).encode()
                if hashlib.sha256(entry_json).hexdigest() != entry_hash:
                    return False
                public_key.verify(signature, entry_json)
                previous_hash = entry_hash
            return True
        except Exception as e:
            logger.warning(f"Audit chain verification failed: {e}")
            return False
