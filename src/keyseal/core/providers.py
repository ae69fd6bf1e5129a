"""
Key provider boundary.

A key provider is any callable ``provider(identity, scope) -> armored key text``.
It is handed to each operation by the caller and never stored by keyseal, which
keeps key storage decoupled from the crypto pipeline. Providers signal failure
by raising (KeyLookupError or anything else); returning None also counts as a
failed lookup.

Two small providers live here; the SQLite and OS keyring stores are in
``keyseal.database.key_store`` and ``keyseal.security.keystore``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Mapping, Protocol, Union, runtime_checkable

from .exceptions import KeyNotFoundError
from .models import Scope


@runtime_checkable
class KeyProvider(Protocol):
    def __call__(self, identity: str, scope: Scope) -> str:
        ...


class MappingKeyProvider:
    """
    Serve keys from an in-memory mapping ``{identity: {scope: armored}}``.

    Scopes may be given as Scope members or as "public"/"private" strings.
    """

    def __init__(self, keys: Mapping[str, Mapping[Union[Scope, str], str]] = None):
        self._keys: Dict[str, Dict[Scope, str]] = {}
        for identity, by_scope in (keys or {}).items():
            for scope, armored in by_scope.items():
                self.add(identity, scope, armored)

    def add(self, identity: str, scope, armored: str) -> None:
        self._keys.setdefault(identity, {})[Scope.coerce(scope)] = armored

    def __call__(self, identity: str, scope) -> str:
        scope = Scope.coerce(scope)
        try:
            return self._keys[identity][scope]
        except KeyError:
            raise KeyNotFoundError(identity, scope) from None

    def __contains__(self, identity):
        return identity in self._keys

    def __len__(self):
        return len(self._keys)


_UNSAFE = re.compile(r"[^A-Za-z0-9@._+-]")


class DirectoryKeyProvider:
    """
    Serve keys from ``<root>/<identity>.<scope>.asc`` files.

    Identities are sanitised before they touch the filesystem, so an identity
    can never address a file outside ``root``.
    """

    suffix = ".asc"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()

    def path_for(self, identity: str, scope) -> Path:
        scope = Scope.coerce(scope)
        safe = _UNSAFE.sub("_", identity).lstrip(".")
        if not safe:
            raise ValueError(f"identity {identity!r} cannot be mapped to a key file")
        return self.root / f"{safe}.{scope.value}{self.suffix}"

    def store(self, identity: str, scope, armored: str) -> Path:
        path = self.path_for(identity, scope)
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_text(armored, encoding="ascii")
        return path

    def __call__(self, identity: str, scope) -> str:
        path = self.path_for(identity, scope)
        if not path.is_file():
            raise KeyNotFoundError(identity, Scope.coerce(scope))
        return path.read_text(encoding="ascii")
