"""OS keystore integration: serve armored OpenPGP keys out of ``keyring``.

Keys live under one service name with an account per identity and scope,
e.g. ``("keyseal", "alice@example.org:private")``. The armored text is
stored as-is since it is already ASCII. Whether the backend actually
protects secrets depends on the platform; ``assess_keyring_backend`` gives a
best-effort answer and writes are refused on backends that look insecure
unless ``force=True``.
"""
import logging
from typing import Optional

try:
    import keyring
except Exception:
    keyring = None

from keyseal.core.exceptions import KeyNotFoundError, StorageError
from keyseal.core.models import Scope

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "keyseal"


def _require_keyring():
    if keyring is None:
        raise RuntimeError("keyring package is not available; install keyring to use keystore features")


def account_name(identity: str, scope) -> str:
    return f"{identity}:{Scope.coerce(scope).value}"


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics only: backends differ per platform. If ``keyring`` is missing
    this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Null", "Fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def save_armored_key(
    identity: str, scope, armored: str, service: str = DEFAULT_SERVICE, force: bool = False
) -> None:
    """Store an armored key for (identity, scope).

    Private keys are only written to a backend that passes
    ``assess_keyring_backend`` unless ``force`` is set.
    """
    _require_keyring()
    scope = Scope.coerce(scope)
    if scope is Scope.PRIVATE and not force:
        secure, msg = assess_keyring_backend()
        if not secure:
            raise StorageError(
                f"refusing to store private key in OS keystore: {msg}; "
                "pass force=True to override if you understand the risk"
            )
    keyring.set_password(service, account_name(identity, scope), armored)
    logger.debug("Stored %s key for %s in keyring service %s", scope, identity, service)


def load_armored_key(identity: str, scope, service: str = DEFAULT_SERVICE) -> Optional[str]:
    """Return the armored key text for (identity, scope), or None."""
    _require_keyring()
    return keyring.get_password(service, account_name(identity, scope))


def delete_armored_key(identity: str, scope, service: str = DEFAULT_SERVICE) -> None:
    _require_keyring()
    from keyring.errors import PasswordDeleteError

    try:
        keyring.delete_password(service, account_name(identity, scope))
    except PasswordDeleteError:
        # nothing stored under that account
        logger.debug("No %s key for %s to delete", Scope.coerce(scope), identity)


class KeyringKeyProvider:
    """Key provider backed by the OS keystore."""

    def __init__(self, service: str = DEFAULT_SERVICE):
        _require_keyring()
        self.service = service

    def store(self, identity: str, scope, armored: str, force: bool = False) -> None:
        save_armored_key(identity, scope, armored, service=self.service, force=force)

    def delete(self, identity: str, scope) -> None:
        delete_armored_key(identity, scope, service=self.service)

    def __call__(self, identity: str, scope) -> str:
        armored = load_armored_key(identity, scope, service=self.service)
        if armored is None:
            raise KeyNotFoundError(identity, Scope.coerce(scope))
        return armored
