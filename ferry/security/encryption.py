"""
ferry.security.encryption
=========================

Standardized encryption routines for the secret vault.
"""


import base64
import os


# For documentation on the cryptography library, or to download it, visit:
#   https://cryptography.io/en/latest/
# To install with pip:
#   pip install cryptography
import cryptography.fernet

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import DecryptionError, EncryptionError


__all__ = [
    'to_bytes',
    'from_bytes',
    'new_salt',
    'get_encryption_key',
    'encrypt',
    'decrypt',
]


KDF_ITERATIONS = 480000
SALT_LENGTH = 16


def to_bytes(data):
    """
    Ensure that a character sequence is represented as a bytes object. If it's already a bytes
    object, no change is made. If it's a string object, it's encoded as a UTF-8 string. Otherwise,
    it is treated as a sequence of character ordinal values.

    :param data: The data to be converted to bytes.
    :return: The data, converted to a bytes instance.
    """

    if isinstance(data, str):
        return data.encode('utf-8')
    else:
        return bytes(data)


def from_bytes(data):
    """
    Ensure that a character sequence is represented as a string object. If it's already a string
    object, no change is made. Otherwise it is decoded as a UTF-8 string.

    :param data: The data to be converted.
    :return: The data, converted to a str instance.
    """

    if isinstance(data, str):
        return data
    else:
        return bytes(data).decode('utf-8')


def new_salt():
    """
    Generate a random salt for key derivation.

    :return: SALT_LENGTH random bytes.
    """
    return os.urandom(SALT_LENGTH)


def get_encryption_key(password, salt, iterations=KDF_ITERATIONS):
    """
    Derive a 32-byte encryption key from a password and salt with PBKDF2-HMAC-SHA256, represented
    in base64 URL-safe encoding, as Fernet expects.

    :param password: The password to derive the key from.
    :param salt: The salt, as bytes. Each vault carries its own.
    :param iterations: The PBKDF2 iteration count.
    :return: The encryption key for the given password and salt.
    """
    salt = to_bytes(salt)
    if not salt:
        raise EncryptionError("A salt is required to derive an encryption key.")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(to_bytes(password)))


def encrypt(data, key):
    """
    Accept a string of unencrypted data and return it as an encrypted token (a bytes instance).

    :param data: The data to be encrypted.
    :param key: A key from get_encryption_key().
    :return: The encrypted data.
    """
    symmetric_encoding = cryptography.fernet.Fernet(key)
    del key
    return symmetric_encoding.encrypt(to_bytes(data))


def decrypt(data, key):
    """
    Accept an encrypted token and return the unencrypted bytes. The result is a bytes instance,
    not a string; use from_bytes() to get text back.

    :param data: The data to be decrypted.
    :param key: The key from get_encryption_key() the data was encrypted with.
    :return: The decrypted data.
    """
    symmetric_encoding = cryptography.fernet.Fernet(key)
    del key

    try:
        return symmetric_encoding.decrypt(to_bytes(data))
    except cryptography.fernet.InvalidToken:
        # Almost always a different password than the one the data was encrypted with.
        raise DecryptionError("Decryption failed; the master password does not match.") from None
