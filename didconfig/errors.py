class DidConfigurationError(ValueError):
    """Base class for every domain linkage issuance or verification failure."""


class InvalidOriginError(DidConfigurationError):
    pass


class InvalidDidError(DidConfigurationError):
    pass


class DidResolutionError(DidConfigurationError):
    pass


class MissingAssertionKeyError(DidConfigurationError):
    pass


class MalformedClaimError(DidConfigurationError):
    pass


class MalformedPresentationError(DidConfigurationError):
    pass


class InvalidCredentialIdError(DidConfigurationError):
    pass


class DidMismatchError(DidConfigurationError):
    pass


class IssuerMismatchError(DidConfigurationError):
    pass


class OriginMismatchError(DidConfigurationError):
    pass


class CredentialExpiredError(DidConfigurationError):
    pass


class SignatureVerificationError(DidConfigurationError):
    pass


class UnsupportedKeyTypeError(SignatureVerificationError):
    pass


class DidConfigurationFetchError(DidConfigurationError):
    pass
