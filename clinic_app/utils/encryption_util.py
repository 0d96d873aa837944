# /clinic_app/utils/encryption_util.py
import base64
import binascii
import hashlib
import hmac
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16


class Encryptor:
    """
    Field-level cipher for PHI columns.

    Tokens are base64(iv || auth_tag || ciphertext) produced with AES-256-GCM.
    It must be initialized with the Flask app to load the key.
    """
    def __init__(self, app=None):
        self.aesgcm = None
        self._index_key = None
        if app:
            self.init_app(app)

    def init_app(self, app):
        """Loads FIELD_ENC_KEY from the app config and fails fast on a bad key."""
        self.configure(app.config.get('FIELD_ENC_KEY'))

    def configure(self, encoded_key):
        if not encoded_key:
            raise ValueError("FIELD_ENC_KEY not set in the Flask application config.")
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"FIELD_ENC_KEY is not valid base64: {e}") from e
        if len(key) != KEY_LENGTH:
            raise ValueError(
                f"FIELD_ENC_KEY must decode to exactly {KEY_LENGTH} bytes, got {len(key)}"
            )

        self.aesgcm = AESGCM(key)
        self._index_key = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=None,
            info=b'clinic-blind-index',
        ).derive(key)

    def _require_key(self):
        if self.aesgcm is None:
            raise RuntimeError("Encryptor has not been initialized with an app context.")

    def encrypt(self, data):
        """Encrypts a value. None passes through; other non-strings are stringified."""
        if data is None:
            return None
        self._require_key()

        if not isinstance(data, str):
            data = str(data)

        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag to the ciphertext; the stored layout puts it first.
        sealed = self.aesgcm.encrypt(iv, data.encode('utf-8'), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode('ascii')

    def decrypt(self, token):
        """
        Decrypts a token. Malformed or tampered input is logged and returned
        unchanged so a single bad value cannot break a list response.
        """
        if token is None:
            return None
        self._require_key()

        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError, TypeError):
            logger.warning("Field decryption skipped: value is not a base64 token")
            return token

        if len(raw) < IV_LENGTH + TAG_LENGTH:
            logger.warning("Field decryption skipped: token too short")
            return token

        iv = raw[:IV_LENGTH]
        tag = raw[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = raw[IV_LENGTH + TAG_LENGTH:]
        try:
            plaintext = self.aesgcm.decrypt(iv, ciphertext + tag, None)
            return plaintext.decode('utf-8')
        except (InvalidTag, UnicodeDecodeError):
            logger.warning("Field decryption failed: authentication tag mismatch")
            return token

    def blind_index(self, value):
        """Deterministic keyed hash of a normalized value for exact-match lookups."""
        if value is None:
            return None
        self._require_key()
        normalized = str(value).strip().lower()
        return hmac.new(self._index_key, normalized.encode('utf-8'), hashlib.sha256).hexdigest()


# Create a single, uninitialized instance to be imported by other modules.
encryptor = Encryptor()
