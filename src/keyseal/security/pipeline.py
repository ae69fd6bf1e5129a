"""
Staged envelope writers.

A pipeline is a chain of writable stages ending in an in-memory sink. Plain
bytes go into the head stage; closing a stage finalises its output and
writes it to the next one. The pipeline owns the order: the head closes
first (e.g. encryption), then each stage after it (e.g. armor), then the
sink. If anything fails, every stage is aborted and no result is produced.

    pipeline = EnvelopePipeline()
    pipeline.add(lambda downstream: ArmorStage(downstream, MESSAGE))
    pipeline.add(lambda downstream: EncryptStage(downstream, recipients, settings))
    with pipeline as head:
        head.write(plaintext)
    armored = pipeline.result()
"""
from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Callable, List, Optional, Sequence

from pgpy import PGPMessage
from pgpy.constants import SymmetricKeyAlgorithm
from pgpy.errors import PGPEncryptionError, PGPError

from keyseal.core.exceptions import (
    EncryptionFailedError,
    KeyLockedError,
    PipelineError,
    SigningFailedError,
)
from keyseal.core.models import KeyEntity
from keyseal.core.settings import EnvelopeSettings

from .armor import armor_encode
from .scope import UnlockedKey

logger = logging.getLogger(__name__)

_CODEC_ERRORS = (PGPError, PGPEncryptionError, NotImplementedError, ValueError, TypeError)


class Stage:
    """
    Base writable stage. Buffers what it is given and hands ``finalize(data)``
    to ``downstream`` on close.

    Stages implement ``__exit__`` so an ExitStack can close or abort them.
    """

    name = "stage"

    def __init__(self, downstream=None):
        self.downstream = downstream
        self._buffer = bytearray()
        self.closed = False
        self.aborted = False

    def write(self, data) -> int:
        if self.closed:
            raise ValueError(f"write to closed {self.name} stage")
        self._buffer += data
        return len(data)

    def finalize(self, data: bytes) -> bytes:
        return data

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        data, self._buffer = bytes(self._buffer), bytearray()
        out = self.finalize(data)
        if self.downstream is not None:
            self.downstream.write(out)

    def abort(self) -> None:
        self.closed = True
        self.aborted = True
        self._buffer = bytearray()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False


class BufferSink(Stage):
    """Terminal stage that keeps the finished envelope bytes."""

    name = "sink"

    def __init__(self):
        super().__init__(downstream=None)
        self._value: Optional[bytes] = None

    def finalize(self, data: bytes) -> bytes:
        self._value = data
        return data

    def getvalue(self) -> bytes:
        if self._value is None or self.aborted:
            raise PipelineError("sink holds no finished envelope")
        return self._value


class ArmorStage(Stage):
    name = "armor"

    def __init__(self, downstream, block_type: str, headers=None):
        super().__init__(downstream)
        self.block_type = block_type
        self.headers = dict(headers or {})

    def finalize(self, data: bytes) -> bytes:
        return armor_encode(data, self.block_type, self.headers).encode("ascii")


def select_cipher(certs, preferences: Sequence[SymmetricKeyAlgorithm]) -> SymmetricKeyAlgorithm:
    """First of our preferences every recipient advertises; AES128 when none is shared."""
    shared = set(preferences)
    for cert in certs:
        advertised = set()
        for uid in cert.userids:
            if uid.selfsig and uid.selfsig.cipherprefs:
                advertised.update(uid.selfsig.cipherprefs)
        shared &= advertised
    for cipher in preferences:
        if cipher in shared:
            return cipher
    # AES128 is mandatory to implement
    return SymmetricKeyAlgorithm.AES128


class EncryptStage(Stage):
    """Encrypts the buffered plaintext to every recipient under one session key."""

    name = "encrypt"

    def __init__(self, downstream, recipients: Sequence[KeyEntity], settings: EnvelopeSettings):
        super().__init__(downstream)
        if not recipients:
            raise ValueError("EncryptStage needs at least one recipient")
        self.recipients = list(recipients)
        self.settings = settings

    def finalize(self, data: bytes) -> bytes:
        certs = [entity.public for entity in self.recipients]
        cipher = select_cipher(certs, self.settings.ciphers)
        try:
            message = PGPMessage.new(data, format="b", compression=self.settings.compression_algorithm)
            sessionkey = cipher.gen_key()
            try:
                for cert in certs:
                    message = cert.encrypt(message, cipher=cipher, sessionkey=sessionkey)
            finally:
                del sessionkey
        except _CODEC_ERRORS as e:
            raise EncryptionFailedError(f"encryption failed: {e}") from e
        logger.debug("Encrypted %d bytes with %s to %d recipient(s)", len(data), cipher.name, len(certs))
        return bytes(message)


class SignStage(Stage):
    """Produces a detached binary-document signature over the buffered bytes."""

    name = "sign"

    def __init__(self, downstream, signer: KeyEntity, settings: EnvelopeSettings, identity: Optional[str] = None):
        super().__init__(downstream)
        if not isinstance(signer.private, UnlockedKey) or not signer.private.is_unlocked:
            raise KeyLockedError(f"key {signer.key_id} must be unlocked before signing")
        self.signer = signer
        self.identity = identity if identity is not None else signer.key_id
        self.settings = settings
        self.hash_algorithm: Optional[str] = None

    def finalize(self, data: bytes) -> bytes:
        try:
            signature = self.signer.private.sign(data, hash_algorithm=self.settings.signature_hash_algorithm)
        except _CODEC_ERRORS as e:
            raise SigningFailedError(f"signing failed: {e}", identity=self.identity) from e
        self.hash_algorithm = signature.hash_algorithm.name
        return bytes(signature)


class EnvelopePipeline:
    """Chain of stages with ordered finalisation. See the module docstring."""

    def __init__(self):
        self.sink = BufferSink()
        self._stages: List[Stage] = []
        self._stack: Optional[ExitStack] = None
        self._result: Optional[bytes] = None

    def add(self, factory: Callable[[Stage], Stage]) -> Stage:
        """Add a stage in front of the current head; ``factory`` receives its downstream."""
        if self._stack is not None:
            raise PipelineError("cannot add stages to a running pipeline")
        downstream = self._stages[-1] if self._stages else self.sink
        stage = factory(downstream)
        self._stages.append(stage)
        return stage

    @property
    def head(self) -> Stage:
        if not self._stages:
            raise PipelineError("pipeline has no stages")
        return self._stages[-1]

    def __enter__(self) -> Stage:
        head = self.head
        if self._stack is not None or self.sink.closed:
            raise PipelineError("pipeline can only run once")
        with ExitStack() as stack:
            stack.push(self.sink)
            for stage in self._stages:
                stack.push(stage)
            self._stack = stack.pop_all()
        return head

    def __exit__(self, exc_type, exc, tb):
        stack, self._stack = self._stack, None
        stack.__exit__(exc_type, exc, tb)
        if exc_type is None:
            self._result = self.sink.getvalue()
        return False

    def result(self) -> bytes:
        if self._result is None:
            raise PipelineError("pipeline did not finish successfully")
        return self._result
