"""
Exceptions for keyseal
Every failure raised by the key-resolution and envelope pipeline derives from
KeySealError so callers have a general error catcher.
Messages carry identities and stage names only, never key text or passphrases.
"""


class KeySealError(Exception):
    # general container for errors
    pass


class StorageError(KeySealError):
    # raised if a key store backend fails in some way
    pass


class KeyLookupError(KeySealError):
    # raised by key providers when a lookup fails
    pass


class KeyNotFoundError(KeyLookupError):
    # raised when no key is stored for an identity/scope pair
    def __init__(self, identity, scope):
        self.identity = identity
        self.scope = scope
        super().__init__(f"no {getattr(scope, 'value', scope)} key for {identity}")


# ----------------------------------------------------------------------
# Key material parsing
# ----------------------------------------------------------------------


class ParseError(KeySealError):
    # raised when key material cannot be turned into an entity
    pass


class MalformedArmorError(ParseError):
    # raised when the text is not a recognised armored key block
    pass


class CorruptKeyPacketError(ParseError):
    # raised when the armored body does not decode into a key
    pass


# ----------------------------------------------------------------------
# Scope validation
# ----------------------------------------------------------------------


class ScopeError(KeySealError):
    # raised when an entity cannot serve the requested scope
    pass


class MissingPublicKeyError(ScopeError):
    # raised when public usage is requested from a block without a public key
    pass


class MissingPrivateKeyError(ScopeError):
    # raised when private usage is requested from a block without a private key
    pass


class UnlockFailedError(ScopeError):
    # raised on a wrong or missing passphrase
    pass


class KeyLockedError(KeySealError):
    # raised when an unlocked key is used after its scope was closed
    pass


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------


class ResolutionError(KeySealError):
    """Resolving an identity failed at one stage; the stage error is ``__cause__``."""

    stage = "resolve"

    def __init__(self, identity, message=None):
        self.identity = identity
        super().__init__(message or f"{self.stage} failed for {identity}")


class ProviderFailedError(ResolutionError):
    stage = "key lookup"


class ParseFailedError(ResolutionError):
    stage = "key parsing"


class ScopeInvalidError(ResolutionError):
    stage = "scope validation"


# ----------------------------------------------------------------------
# Envelope operations
# ----------------------------------------------------------------------


class OperationError(KeySealError):
    """Base for errors raised by encrypt/sign/decrypt/verify."""

    def __init__(self, message, identity=None):
        self.identity = identity
        super().__init__(message)


class EncryptError(OperationError):
    pass


class RecipientResolutionError(EncryptError):
    # raised when any recipient cannot be resolved
    pass


class EncryptionFailedError(EncryptError):
    # raised when the codec rejects the encryption
    pass


class SignError(OperationError):
    pass


class SenderResolutionError(SignError):
    # raised when the signing identity cannot be resolved
    pass


class SigningFailedError(SignError):
    # raised when the codec rejects the signing key or algorithm
    pass


class DecryptError(OperationError):
    pass


class DecryptionKeyResolutionError(DecryptError):
    # raised when the recipient's private key cannot be resolved
    pass


class NoMatchingKeyError(DecryptError):
    # raised when the envelope was not encrypted to any of the entity's keys
    pass


class DecryptionFailedError(DecryptError):
    # raised when the codec fails to decrypt with a matching key
    pass


class VerifyError(OperationError):
    pass


class WrongBlockTypeError(VerifyError):
    # raised when the armored block is not a signature
    pass


class DisallowedHashError(VerifyError):
    # raised when the signature uses a hash outside the allow-list
    pass


class SignerResolutionError(VerifyError):
    # raised when the signer's public key cannot be resolved
    pass


class MalformedEnvelopeError(DecryptError, VerifyError):
    # raised on armor or packet corruption of a message or signature
    pass


class PipelineError(KeySealError):
    # raised when a pipeline result is read before successful finalisation
    pass
