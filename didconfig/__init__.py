from didconfig.errors import (
    CredentialExpiredError,
    DidConfigurationError,
    DidConfigurationFetchError,
    DidMismatchError,
    DidResolutionError,
    InvalidCredentialIdError,
    InvalidDidError,
    InvalidOriginError,
    IssuerMismatchError,
    MalformedClaimError,
    MalformedPresentationError,
    MissingAssertionKeyError,
    OriginMismatchError,
    SignatureVerificationError,
    UnsupportedKeyTypeError,
)
from didconfig.issuer import create_credential
from didconfig.presentation import (
    from_credential_iri,
    get_domain_linkage_presentation,
    to_credential_iri,
)
from didconfig.verify import (
    fetch_did_configuration,
    verify_did_config_presentation,
    verify_domain_linkage,
)
