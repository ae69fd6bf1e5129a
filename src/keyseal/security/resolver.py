"""
Key resolution: identity -> provider -> parser -> scope validation.

Every failure is reported as a ResolutionError subclass naming the identity
and the stage that failed, with the underlying error chained as __cause__.

    with KeyResolver(provider) as resolver:
        sender = resolver.resolve_one("alice@example.org", Scope.PRIVATE, passphrase)
        recipients = resolver.resolve_many(["bob@example.org"], Scope.PUBLIC)
        ...
    # unlocked keys are released here
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack, closing
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from keyseal.core.exceptions import (
    KeyNotFoundError,
    ParseError,
    ParseFailedError,
    ProviderFailedError,
    ScopeError,
    ScopeInvalidError,
)
from keyseal.core.models import KeyEntity, Scope

from .parser import parse_entity
from .scope import Passphrase, validate_scope

logger = logging.getLogger(__name__)


def _lookup(provider, identity: str, scope: Scope) -> str:
    try:
        material = provider(identity, scope)
    except Exception as e:
        raise ProviderFailedError(identity) from e
    if material is None:
        raise ProviderFailedError(identity) from KeyNotFoundError(identity, scope)
    return material


def _build(identity: str, material, scope: Scope, passphrase: Passphrase, stack: Optional[ExitStack]) -> KeyEntity:
    try:
        entity = parse_entity(material)
    except ParseError as e:
        raise ParseFailedError(identity) from e
    try:
        entity = validate_scope(entity, scope, passphrase, stack)
    except ScopeError as e:
        raise ScopeInvalidError(identity) from e
    logger.debug("Resolved %s key %s for %s", scope, entity.key_id, identity)
    return entity


def _lookups(provider, identities: Sequence[str], scope: Scope, max_workers: int) -> Iterator[Tuple[str, str]]:
    """Yield (identity, material) in input order, fetching concurrently when allowed."""
    if max_workers <= 1 or len(identities) <= 1:
        for identity in identities:
            yield identity, _lookup(provider, identity, scope)
        return

    with ThreadPoolExecutor(max_workers=min(max_workers, len(identities))) as pool:
        futures = [pool.submit(_lookup, provider, identity, scope) for identity in identities]
        try:
            for identity, future in zip(identities, futures):
                yield identity, future.result()
        finally:
            for future in futures:
                future.cancel()


def resolve_one(
    identity: str,
    provider,
    scope,
    passphrase: Passphrase = None,
    *,
    stack: Optional[ExitStack] = None,
) -> KeyEntity:
    """Resolve one identity. For PRIVATE scope without ``stack`` the caller must close ``entity.private``."""
    scope = Scope.coerce(scope)
    return _build(identity, _lookup(provider, identity, scope), scope, passphrase, stack)


def resolve_many(
    identities: Iterable[str],
    provider,
    scope,
    passphrase: Passphrase = None,
    *,
    stack: Optional[ExitStack] = None,
    max_workers: int = 1,
) -> List[KeyEntity]:
    """
    Resolve identities in order and stop at the first failure.

    With ``max_workers`` > 1 provider lookups run on a thread pool, but results
    are consumed in input order, so the error raised is always the one for the
    earliest failing identity. Keys unlocked before a failure are released
    unless ``stack`` owns them.
    """
    scope = Scope.coerce(scope)
    identities = list(identities)
    entities = []
    with ExitStack() as owned:
        target = stack if stack is not None else owned
        with closing(_lookups(provider, identities, scope, max_workers)) as lookups:
            for identity, material in lookups:
                entities.append(_build(identity, material, scope, passphrase, target))
        # success: the caller takes over the unlocked keys
        owned.pop_all()
    return entities


class KeyResolver:
    """Resolves identities through one provider and releases unlocked keys on close."""

    def __init__(self, provider, max_workers: int = 1):
        if not callable(provider):
            raise TypeError("provider must be callable as provider(identity, scope)")
        self.provider = provider
        self.max_workers = max_workers
        self._stack = ExitStack()
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("KeyResolver is closed")

    def resolve_one(self, identity: str, scope, passphrase: Passphrase = None) -> KeyEntity:
        self._check_open()
        return resolve_one(identity, self.provider, scope, passphrase, stack=self._stack)

    def resolve_many(self, identities: Iterable[str], scope, passphrase: Passphrase = None) -> List[KeyEntity]:
        self._check_open()
        return resolve_many(
            identities, self.provider, scope, passphrase, stack=self._stack, max_workers=self.max_workers
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stack.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
