"""Security utilities: credential encryption and admin key checks."""

import base64
import hmac

from cryptography.fernet import Fernet

from portal.core.config import get_settings

settings = get_settings()


# ── Field-level encryption (Fernet) ──────────────────────────

def _get_fernet() -> Fernet:
    if not settings.encryption_key:
        raise RuntimeError("ENCRYPTION_KEY is not configured")
    return Fernet(settings.encryption_key.encode())


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string value. Returns base64 ciphertext."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted value."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


# ── Admin API key ─────────────────────────────────────────────

def verify_admin_key(presented: str) -> bool:
    """Constant-time comparison against the configured admin key."""
    if not settings.admin_api_key:
        return False
    return hmac.compare_digest(presented.encode(), settings.admin_api_key.encode())


# ── HTTP basic auth ───────────────────────────────────────────

def basic_auth_header(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode()
    return "Basic " + base64.b64encode(raw).decode()
