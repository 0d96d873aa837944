# /clinic_app/models/types.py
from sqlalchemy.types import Text, TypeDecorator

from clinic_app.utils.encryption_util import encryptor


class EncryptedText(TypeDecorator):
    """
    Column type for PHI. Values are encrypted on the way into the database and
    decrypted on the way out, so model attributes always hold plaintext while
    the stored column only ever holds cipher tokens.

    Ciphertext is randomized, so these columns cannot be used in equality or
    LIKE filters. Pair a column with a blind index when exact lookups are needed.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return encryptor.encrypt(value)

    def process_result_value(self, value, dialect):
        return encryptor.decrypt(value)
