import logging
from typing import Optional

from didconfig.claims import build_domain_claim, validate_origin
from didconfig.dids import (
    DidResolver,
    SignCallback,
    default_resolver,
    first_assertion_key,
    resolve_document,
)
from didconfig.hashing import bytes_to_hex, credential_from_claim, hex_to_bytes
from didconfig.models import ClaimerSignature, CredentialPresentation, SignRequest

logger = logging.getLogger(__name__)


async def create_credential(
    sign_callback: SignCallback,
    origin: str,
    did_uri: str,
    *,
    resolver: Optional[DidResolver] = None,
) -> CredentialPresentation:
    """Issue a signed domain linkage credential binding `did_uri` to `origin`."""
    resolver = resolver or default_resolver()
    document = await resolve_document(did_uri, resolver)

    validate_origin(origin)
    claim = build_domain_claim(origin, document)
    credential = credential_from_claim(claim)

    first_assertion_key(document)

    signed = await sign_callback(
        SignRequest(data=hex_to_bytes(credential.rootHash), did=claim.owner, key_relationship="assertionMethod")
    )
    logger.info("Issued domain linkage credential %s for %s at %s", credential.rootHash, claim.owner, origin)

    return CredentialPresentation(
        **credential.model_dump(),
        claimerSignature=ClaimerSignature(keyUri=signed.key_uri, signature=bytes_to_hex(signed.signature)),
    )
