"""SQLite-backed key store usable as a key provider."""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Union

from .connection import DatabaseConnection
from ..core.exceptions import KeyNotFoundError, MissingPrivateKeyError, MissingPublicKeyError, StorageError
from ..core.models import Scope
from ..security.parser import parse_entity

logger = logging.getLogger(__name__)


class SQLiteKeyStore:
    """
    Armored key blocks keyed by (identity, scope).

        store = SQLiteKeyStore("keys.db")
        store.put("alice@example.org", Scope.PUBLIC, alice_pub)
        envelope = encrypt(b"hi", ["alice@example.org"], store)
    """

    def __init__(self, db: Union[DatabaseConnection, str, Path] = "./keyseal.db"):
        self.db = db if isinstance(db, DatabaseConnection) else DatabaseConnection(db)

    def initialize(self) -> None:
        self.db.initialize()

    def put(self, identity: str, scope, armored: str) -> str:
        """
        Store ``armored`` for (identity, scope), replacing any previous block.

        The block must parse and hold the half ``scope`` names. Returns the
        key fingerprint.
        """
        scope = Scope.coerce(scope)
        entity = parse_entity(armored)
        if scope is Scope.PUBLIC and not entity.has_public:
            raise MissingPublicKeyError(f"key {entity.key_id} is not a public key block")
        if scope is Scope.PRIVATE and not entity.has_private:
            raise MissingPrivateKeyError(f"key {entity.key_id} is not a private key block")

        if not isinstance(armored, str):
            armored = bytes(armored).decode("ascii")

        self.initialize()
        try:
            with self.db.get_transaction_context() as cursor:
                cursor.execute(
                    """
                    INSERT INTO pgp_keys (identity, scope, armored, fingerprint)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(identity, scope) DO UPDATE SET
                        armored = excluded.armored,
                        fingerprint = excluded.fingerprint
                    """,
                    (identity, scope.value, armored, entity.fingerprint),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store key for {identity}: {e}") from e
        logger.debug("Stored %s key %s for %s", scope, entity.key_id, identity)
        return entity.fingerprint

    def get(self, identity: str, scope) -> Optional[str]:
        self.initialize()
        row = self.db.fetch_one(
            "SELECT armored FROM pgp_keys WHERE identity = ? AND scope = ?",
            (identity, Scope.coerce(scope).value),
        )
        return row["armored"] if row else None

    def delete(self, identity: str, scope=None) -> int:
        """Delete one scope, or both when ``scope`` is None. Returns rows removed."""
        self.initialize()
        if scope is None:
            return self.db.execute("DELETE FROM pgp_keys WHERE identity = ?", (identity,))
        return self.db.execute(
            "DELETE FROM pgp_keys WHERE identity = ? AND scope = ?",
            (identity, Scope.coerce(scope).value),
        )

    def list_identities(self) -> List[str]:
        self.initialize()
        rows = self.db.fetch_all("SELECT DISTINCT identity FROM pgp_keys ORDER BY identity")
        return [row["identity"] for row in rows]

    def fingerprint(self, identity: str, scope) -> Optional[str]:
        self.initialize()
        row = self.db.fetch_one(
            "SELECT fingerprint FROM pgp_keys WHERE identity = ? AND scope = ?",
            (identity, Scope.coerce(scope).value),
        )
        return row["fingerprint"] if row else None

    def __call__(self, identity: str, scope) -> str:
        armored = self.get(identity, scope)
        if armored is None:
            raise KeyNotFoundError(identity, Scope.coerce(scope))
        return armored

    def close(self) -> None:
        self.db.close()
