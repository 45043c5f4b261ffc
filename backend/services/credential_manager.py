"""OS keychain storage for process-level secrets.

Webhook signing secrets and the Redis URL (which may embed a password) can
live in the keychain instead of ``.env``; ``config.KeychainSettingsSource``
reads them at startup. Per-connection provider credentials stay on the
connection row and never pass through here.
"""

import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE = "ledger-sync"

SECRET_KEYS: frozenset[str] = frozenset({"MERCURY_WEBHOOK_SECRET", "REDIS_URL"})


def _require_secret_key(key: str) -> None:
    if key not in SECRET_KEYS:
        raise ValueError(f"{key!r} is not a keychain-managed secret")


def read_secret(key: str) -> str | None:
    """Look up a secret, or ``None`` when it is unset or no keychain backend works."""
    try:
        return keyring.get_password(KEYCHAIN_SERVICE, key)
    except KeyringError:
        logger.debug("Keychain lookup failed for %s", key, exc_info=True)
        return None


def write_secret(key: str, value: str) -> bool:
    """Store a secret.

    Args:
        key: One of :data:`SECRET_KEYS`.
        value: Non-blank secret value.

    Returns:
        ``True`` once stored, ``False`` when the keychain refused the write.

    Raises:
        ValueError: If ``key`` is not managed here or ``value`` is blank.
    """
    _require_secret_key(key)
    if not value or not value.strip():
        raise ValueError(f"refusing to store a blank value for {key}")

    try:
        keyring.set_password(KEYCHAIN_SERVICE, key, value)
    except KeyringError:
        logger.warning("Keychain rejected %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def forget_secret(key: str) -> bool:
    """Remove a secret. Returns ``False`` when nothing was stored under ``key``."""
    _require_secret_key(key)
    try:
        keyring.delete_password(KEYCHAIN_SERVICE, key)
    except PasswordDeleteError:
        return False
    except KeyringError:
        logger.warning("Keychain delete failed for %s", key, exc_info=True)
        return False
    logger.info("Removed %s from keychain", key)
    return True
