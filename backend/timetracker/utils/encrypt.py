from cryptography.fernet import Fernet
from timetracker.config import settings

def get_fernet_key():
    """Returns the Fernet key from settings."""
    return Fernet(settings.encryption_key.encode('utf-8'))

def encrypt_data(data: str) -> str:
    """Encrypts a string using Fernet."""
    f = get_fernet_key()
    return f.encrypt(data.encode('utf-8')).decode('utf-8')

def decrypt_data(encrypted_data: str) -> str:
    """Decrypts a string using Fernet."""
    f = get_fernet_key()
    return f.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')

def encrypt_token(token: str) -> str:
    """Encrypts an OAuth token; the empty string stays empty."""
    if not token:
        return ''
    return encrypt_data(token)

def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypts an OAuth token; the empty string stays empty.
    Raises cryptography.fernet.InvalidToken for values that are not Fernet tokens.
    """
    if not encrypted_token:
        return ''
    return decrypt_data(encrypted_token)
