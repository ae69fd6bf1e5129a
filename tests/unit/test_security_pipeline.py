"""
Unit tests for the staged envelope pipeline.
"""

from contextlib import ExitStack

import pytest
from pgpy import PGPMessage
from pgpy.constants import SymmetricKeyAlgorithm

from keyseal.core.exceptions import EncryptionFailedError, KeyLockedError, PipelineError
from keyseal.core.models import Scope
from keyseal.core.settings import EnvelopeSettings
from keyseal.security.armor import MESSAGE, armor_decode
from keyseal.security.parser import parse_entity
from keyseal.security.pipeline import (
    ArmorStage,
    EncryptStage,
    EnvelopePipeline,
    SignStage,
    Stage,
    select_cipher,
)
from keyseal.security.scope import validate_scope


class RecordingStage(Stage):
    """Tags its output with its name and records close/abort order."""

    def __init__(self, downstream, name, log, fail=False):
        super().__init__(downstream)
        self.name = name
        self.log = log
        self.fail = fail

    def finalize(self, data):
        self.log.append(("close", self.name))
        if self.fail:
            raise RuntimeError(f"{self.name} failed")
        return data + self.name.encode()

    def abort(self):
        self.log.append(("abort", self.name))
        super().abort()


# ==============================================================================
# Ordering
# ==============================================================================

def test_head_closes_before_downstream_stages():
    log = []
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: RecordingStage(d, "armor", log))
    pipeline.add(lambda d: RecordingStage(d, "encrypt", log))
    with pipeline as head:
        head.write(b"data:")
    assert log == [("close", "encrypt"), ("close", "armor")]
    assert pipeline.result() == b"data:encryptarmor"


def test_error_in_body_aborts_every_stage():
    log = []
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: RecordingStage(d, "armor", log))
    pipeline.add(lambda d: RecordingStage(d, "encrypt", log))
    with pytest.raises(ValueError):
        with pipeline as head:
            head.write(b"partial")
            raise ValueError("source failed")
    assert log == [("abort", "encrypt"), ("abort", "armor")]
    with pytest.raises(PipelineError):
        pipeline.result()


def test_error_while_closing_aborts_remaining_stages():
    log = []
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: RecordingStage(d, "armor", log))
    pipeline.add(lambda d: RecordingStage(d, "encrypt", log, fail=True))
    with pytest.raises(RuntimeError, match="encrypt failed"):
        with pipeline as head:
            head.write(b"x")
    assert log == [("close", "encrypt"), ("abort", "armor")]
    assert pipeline.sink.aborted
    with pytest.raises(PipelineError):
        pipeline.result()


def test_pipeline_without_stages_refuses_to_run():
    with pytest.raises(PipelineError):
        with EnvelopePipeline():
            pass


def test_pipeline_runs_once():
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: Stage(d))
    with pipeline as head:
        head.write(b"x")
    with pytest.raises(PipelineError):
        with pipeline:
            pass


def test_write_after_close_fails():
    stage = Stage()
    stage.close()
    with pytest.raises(ValueError):
        stage.write(b"x")


# ==============================================================================
# Concrete stages
# ==============================================================================

def test_armor_stage_output():
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: ArmorStage(d, MESSAGE, {"Comment": "keyseal"}))
    with pipeline as head:
        head.write(b"\x01\x02")
    block = armor_decode(pipeline.result(), expected=MESSAGE)
    assert block.body == b"\x01\x02"
    assert block.headers["Comment"] == "keyseal"


def test_encrypt_stage_targets_encryption_subkey(qwert_public):
    recipient = parse_entity(qwert_public)
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: ArmorStage(d, MESSAGE))
    pipeline.add(lambda d: EncryptStage(d, [recipient], EnvelopeSettings()))
    with pipeline as head:
        head.write(b"Hello World")
    message = PGPMessage.from_blob(armor_decode(pipeline.result()).body)
    assert message.is_encrypted
    assert message.encrypters == {"B1A06630BECF84A0"}


def test_encrypt_stage_needs_recipients():
    with pytest.raises(ValueError):
        EncryptStage(None, [], EnvelopeSettings())


def test_encrypt_stage_wraps_codec_errors(sign_only_key):
    recipient = parse_entity(sign_only_key[0])
    pipeline = EnvelopePipeline()
    pipeline.add(lambda d: EncryptStage(d, [recipient], EnvelopeSettings()))
    with pytest.raises(EncryptionFailedError):
        with pipeline as head:
            head.write(b"x")


def test_sign_stage_requires_unlocked_key(qwert_private):
    with pytest.raises(KeyLockedError):
        SignStage(None, parse_entity(qwert_private), EnvelopeSettings())


def test_sign_stage_records_hash(qwert_private):
    with ExitStack() as stack:
        signer = validate_scope(parse_entity(qwert_private), Scope.PRIVATE, "qwert123", stack)
        pipeline = EnvelopePipeline()
        stage = pipeline.add(lambda d: SignStage(d, signer, EnvelopeSettings(signature_hash="SHA384")))
        with pipeline as head:
            head.write(b"Hello World")
    assert stage.hash_algorithm == "SHA384"
    assert pipeline.result()


# ==============================================================================
# Cipher selection
# ==============================================================================

class _Sig:
    def __init__(self, prefs):
        self.cipherprefs = prefs


class _Uid:
    def __init__(self, prefs):
        self.selfsig = _Sig(prefs)


class _Cert:
    def __init__(self, *prefs):
        self.userids = [_Uid(list(prefs))]


def test_select_cipher_prefers_shared_strongest():
    ours = [SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES128]
    certs = [
        _Cert(SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES128),
        _Cert(SymmetricKeyAlgorithm.AES128),
    ]
    assert select_cipher(certs, ours) is SymmetricKeyAlgorithm.AES128
    assert select_cipher(certs[:1], ours) is SymmetricKeyAlgorithm.AES256


def test_select_cipher_falls_back_to_aes128():
    certs = [_Cert(SymmetricKeyAlgorithm.CAST5)]
    assert select_cipher(certs, [SymmetricKeyAlgorithm.AES256]) is SymmetricKeyAlgorithm.AES128
