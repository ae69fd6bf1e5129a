"""
OpenPGP envelope operations: encrypt, sign, decrypt and verify.

Keys are fetched per call through the caller's provider and never cached;
unlocked private material is released before each operation returns.
Errors are OperationError subclasses that name the failing identity and
chain the stage error as ``__cause__``.
"""
from __future__ import annotations

import logging
from typing import BinaryIO, Iterable, Optional, Union

from cryptography.hazmat.primitives import hashes
from pgpy import PGPMessage, PGPSignature
from pgpy.constants import SignatureType
from pgpy.errors import PGPDecryptionError, PGPError

from keyseal.core.exceptions import (
    DecryptionFailedError,
    DecryptionKeyResolutionError,
    DisallowedHashError,
    MalformedArmorError,
    MalformedEnvelopeError,
    MissingPublicKeyError,
    NoMatchingKeyError,
    RecipientResolutionError,
    ResolutionError,
    SenderResolutionError,
    SignerResolutionError,
    WrongBlockTypeError,
)
from keyseal.core.models import EncryptedEnvelope, Envelope, KeyEntity, Scope, SignatureEnvelope
from keyseal.core.settings import DEFAULT_SETTINGS, EnvelopeSettings
from keyseal.core.streams import iter_chunks, read_all

from .armor import MESSAGE, SIGNATURE, armor_decode
from .pipeline import ArmorStage, EncryptStage, EnvelopePipeline, SignStage
from .resolver import KeyResolver
from .scope import Passphrase

logger = logging.getLogger(__name__)

ArmoredInput = Union[Envelope, str, bytes, bytearray, BinaryIO]


def _armored_bytes(envelope: ArmoredInput, chunk_size: int) -> bytes:
    if isinstance(envelope, Envelope):
        return bytes(envelope)
    if isinstance(envelope, str):
        try:
            return envelope.encode("ascii")
        except UnicodeEncodeError:
            raise MalformedArmorError("armored data must be ASCII text") from None
    if isinstance(envelope, (bytes, bytearray, memoryview)):
        return bytes(envelope)
    return read_all(envelope, chunk_size)


def _feed(head, plaintext, chunk_size: int) -> None:
    for chunk in iter_chunks(plaintext, chunk_size):
        head.write(chunk)


def encrypt(
    plaintext,
    recipients: Iterable[str],
    provider,
    settings: Optional[EnvelopeSettings] = None,
) -> EncryptedEnvelope:
    """
    Encrypt ``plaintext`` to every recipient and return an armored PGP MESSAGE.

    All recipients are resolved with PUBLIC scope before any plaintext is
    read. A single failing recipient aborts the whole call with
    RecipientResolutionError naming that identity.
    """
    settings = settings or DEFAULT_SETTINGS
    recipients = list(recipients)
    if not recipients:
        raise RecipientResolutionError("at least one recipient is required")

    with KeyResolver(provider, max_workers=settings.max_workers) as resolver:
        try:
            entities = resolver.resolve_many(recipients, Scope.PUBLIC)
        except ResolutionError as e:
            logger.warning("Encryption aborted, %s", e)
            raise RecipientResolutionError(f"cannot encrypt to {e.identity}: {e}", identity=e.identity) from e

        pipeline = EnvelopePipeline()
        pipeline.add(lambda downstream: ArmorStage(downstream, MESSAGE, settings.armor_headers))
        pipeline.add(lambda downstream: EncryptStage(downstream, entities, settings))
        with pipeline as head:
            _feed(head, plaintext, settings.chunk_size)

    envelope = EncryptedEnvelope(pipeline.result())
    logger.info("Encrypted message for %d recipient(s)", len(entities))
    return envelope


def sign(
    plaintext,
    sender: str,
    provider,
    passphrase: Passphrase = None,
    settings: Optional[EnvelopeSettings] = None,
) -> SignatureEnvelope:
    """
    Make an armored detached PGP SIGNATURE over ``plaintext``.

    The sender's private key is unlocked for the duration of the call only.
    """
    settings = settings or DEFAULT_SETTINGS

    with KeyResolver(provider) as resolver:
        try:
            entity = resolver.resolve_one(sender, Scope.PRIVATE, passphrase)
        except ResolutionError as e:
            logger.warning("Signing aborted, %s", e)
            raise SenderResolutionError(f"cannot sign as {sender}: {e}", identity=sender) from e

        pipeline = EnvelopePipeline()
        pipeline.add(lambda downstream: ArmorStage(downstream, SIGNATURE, settings.armor_headers))
        signer = pipeline.add(lambda downstream: SignStage(downstream, entity, settings, identity=sender))
        with pipeline as head:
            _feed(head, plaintext, settings.chunk_size)

    envelope = SignatureEnvelope(pipeline.result(), hash_algorithm=signer.hash_algorithm)
    logger.info("Signed message as %s using %s", entity.key_id, signer.hash_algorithm)
    return envelope


def decrypt(
    envelope: ArmoredInput,
    recipient: str,
    provider,
    passphrase: Passphrase = None,
    settings: Optional[EnvelopeSettings] = None,
) -> bytes:
    """
    Decrypt an armored PGP MESSAGE with ``recipient``'s private key.

    Raises DecryptionKeyResolutionError if the key cannot be resolved or
    unlocked, MalformedEnvelopeError for bad armor or packets,
    NoMatchingKeyError if the message was not encrypted to this key and
    DecryptionFailedError if the codec fails.
    """
    settings = settings or DEFAULT_SETTINGS

    with KeyResolver(provider) as resolver:
        try:
            entity = resolver.resolve_one(recipient, Scope.PRIVATE, passphrase)
        except ResolutionError as e:
            logger.warning("Decryption aborted, %s", e)
            raise DecryptionKeyResolutionError(f"cannot decrypt as {recipient}: {e}", identity=recipient) from e

        try:
            block = armor_decode(_armored_bytes(envelope, settings.chunk_size), expected=MESSAGE)
        except MalformedArmorError as e:
            raise MalformedEnvelopeError(f"not an armored PGP MESSAGE: {e}", identity=recipient) from e
        try:
            message = PGPMessage.from_blob(block.body)
            encrypted = message.is_encrypted
        except Exception as e:
            raise MalformedEnvelopeError(f"message packets do not parse: {e}", identity=recipient) from e
        if not encrypted:
            raise MalformedEnvelopeError("message is not encrypted", identity=recipient)

        targets = {str(keyid).upper() for keyid in message.encrypters}
        if not targets & entity.key_ids:
            raise NoMatchingKeyError(
                f"message is encrypted to {', '.join(sorted(targets))}, not to {recipient}", identity=recipient
            )

        try:
            content = entity.private.decrypt(message).message
        except (PGPDecryptionError, PGPError, NotImplementedError, ValueError, TypeError) as e:
            raise DecryptionFailedError(f"decryption failed: {e}", identity=recipient) from e

    if isinstance(content, str):
        content = content.encode("utf-8")
    if not isinstance(content, (bytes, bytearray)):
        raise DecryptionFailedError("decrypted message holds no literal data", identity=recipient)
    logger.info("Decrypted message for %s", recipient)
    return bytes(content)


def _quick_check(sig: PGPSignature, data: bytes) -> bool:
    """Compare the signature's left 16 bits of digest against ``data``."""
    digest = hashes.Hash(getattr(hashes, sig.hash_algorithm.name)())
    digest.update(bytes(sig.hashdata(data)))
    return digest.finalize()[:2] == bytes(sig.hash2)


def verify(
    signature: ArmoredInput,
    signer: KeyEntity,
    message,
    settings: Optional[EnvelopeSettings] = None,
) -> bool:
    """
    Check an armored detached signature over ``message`` against ``signer``.

    Returns False when the signature is well formed but does not verify:
    made by another key, made over other data, or cryptographically invalid.
    Raises for inputs that cannot be checked at all: no public key,
    bad armor, a non-signature block or a hash outside the allow-list.
    """
    settings = settings or DEFAULT_SETTINGS
    identity = signer.identities[0] if signer.identities else signer.key_id

    if signer.public is None:
        raise MissingPublicKeyError(f"key {signer.key_id} has no public key block")

    try:
        block = armor_decode(_armored_bytes(signature, settings.chunk_size))
    except MalformedArmorError as e:
        raise MalformedEnvelopeError(f"signature armor is malformed: {e}", identity=identity) from e
    if block.block_type != SIGNATURE:
        raise WrongBlockTypeError(f"expected PGP SIGNATURE, got PGP {block.block_type}", identity=identity)

    try:
        sig = PGPSignature.from_blob(block.body)
        hash_algorithm = sig.hash_algorithm
        issuer = sig.signer
        sig_type = sig.type
    except Exception as e:
        raise MalformedEnvelopeError(f"signature packet does not parse: {e}", identity=identity) from e

    if hash_algorithm not in settings.hash_allow_list:
        raise DisallowedHashError(f"signature uses disallowed hash {hash_algorithm.name}", identity=identity)

    data = read_all(message, settings.chunk_size)

    if sig_type is not SignatureType.BinaryDocument and sig_type is not SignatureType.CanonicalDocument:
        logger.debug("Signature type %s is not a document signature", sig_type)
        return False
    if not issuer or str(issuer).upper() not in signer.key_ids:
        logger.debug("Signature issuer %s is not %s", issuer, signer.key_id)
        return False
    if not _quick_check(sig, data):
        logger.debug("Signature digest prefix does not match the message")
        return False

    try:
        result = bool(signer.public.verify(data, sig))
    except (PGPError, NotImplementedError, ValueError) as e:
        logger.debug("Signature check raised %s", e)
        return False

    logger.info("Signature by %s %s", signer.key_id, "verified" if result else "did not verify")
    return result


def verify_sender(
    signature: ArmoredInput,
    sender: str,
    provider,
    message,
    settings: Optional[EnvelopeSettings] = None,
) -> bool:
    """Resolve ``sender``'s public key through ``provider`` and verify with it."""
    with KeyResolver(provider) as resolver:
        try:
            entity = resolver.resolve_one(sender, Scope.PUBLIC)
        except ResolutionError as e:
            logger.warning("Verification aborted, %s", e)
            raise SignerResolutionError(f"cannot verify {sender}: {e}", identity=sender) from e
    return verify(signature, entity, message, settings)
