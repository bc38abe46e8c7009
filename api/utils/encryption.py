"""
Credential encryption for pool server passwords.

Passwords are stored Fernet-encrypted; the key comes from FERNET_KEY.
The key is read on first use so that modules importing the models do not
need it until a credential is actually touched.
"""
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv
load_dotenv()

_fernet: Optional[Fernet] = None


def get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = os.environ.get("FERNET_KEY")
        if not key:
            raise ValueError("FERNET_KEY environment variable not set!")
        _fernet = Fernet(key)
    return _fernet


def encrypt_value(value: str) -> str:
    return get_fernet().encrypt(value.encode()).decode()


def decrypt_value(value: str) -> str:
    try:
        return get_fernet().decrypt(value.encode()).decode()
    except InvalidToken:
        # Stored with a different key; treat as a configuration error
        raise ValueError("Stored credential could not be decrypted with the current FERNET_KEY")
