import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from didconfig.claims import is_valid_url
from didconfig.dids import DidResolver, default_resolver, validate_did_uri, verify_did_signature
from didconfig.errors import InvalidCredentialIdError, InvalidOriginError, MalformedClaimError
from didconfig.hashing import hex_to_bytes, is_hex, verify_root_hash
from didconfig.models import (
    CredentialPresentation,
    CredentialSubject,
    DomainLinkageCredential,
    DomainLinkagePresentation,
    SelfSignedProof,
)

logger = logging.getLogger(__name__)

DEFAULT_VERIFIABLECREDENTIAL_TYPE = "VerifiableCredential"
DOMAIN_LINKAGE_CREDENTIAL_TYPE = "DomainLinkageCredential"
KILT_VERIFIABLECREDENTIAL_TYPE = "KiltCredential2020"
KILT_SELF_SIGNED_PROOF_TYPE = "KILTSelfSigned2020"
KILT_CREDENTIAL_IRI_PREFIX = "kilt:cred:"
DID_CONFIGURATION_CONTEXT = "https://identity.foundation/.well-known/did-configuration/v1"
DID_VC_CONTEXT = "https://www.w3.org/2018/credentials/v1"

DEFAULT_VALIDITY = timedelta(days=365 * 5)


def to_credential_iri(root_hash: str) -> str:
    if isinstance(root_hash, str) and root_hash.startswith(KILT_CREDENTIAL_IRI_PREFIX):
        return root_hash
    if not is_hex(root_hash):
        raise InvalidCredentialIdError(f"Root hash is not a hex string: {root_hash!r}")
    return KILT_CREDENTIAL_IRI_PREFIX + root_hash


def from_credential_iri(credential_id: str) -> str:
    if not isinstance(credential_id, str):
        raise InvalidCredentialIdError(f"Credential id is not a string: {credential_id!r}")
    root_hash = credential_id
    if root_hash.startswith(KILT_CREDENTIAL_IRI_PREFIX):
        root_hash = root_hash[len(KILT_CREDENTIAL_IRI_PREFIX):]
    if not is_hex(root_hash):
        raise InvalidCredentialIdError(f"Credential id does not carry a root hash: {credential_id!r}")
    return root_hash


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def get_domain_linkage_presentation(
    credential: Union[CredentialPresentation, Dict[str, Any]],
    expiration_date: Optional[Union[str, datetime]] = None,
    *,
    resolver: Optional[DidResolver] = None,
) -> DomainLinkagePresentation:
    """Turn a signed credential presentation into a `linked_dids` envelope.

    The claimer signature is re-verified against the owner's assertion keys
    before anything is emitted.
    """
    resolver = resolver or default_resolver()
    if not isinstance(credential, CredentialPresentation):
        try:
            credential = CredentialPresentation.model_validate(credential)
        except ValidationError as e:
            raise MalformedClaimError(f"Not a credential presentation: {e}") from e

    now = datetime.now(timezone.utc)
    if expiration_date is None:
        expiration_date = now + DEFAULT_VALIDITY
    if isinstance(expiration_date, datetime):
        expiration_date = format_timestamp(expiration_date)

    claim = credential.claim
    if not claim.owner or "origin" not in claim.contents:
        raise MalformedClaimError("Claim does not contain an owner or origin")

    did_uri = validate_did_uri(claim.owner)

    origin = claim.contents["origin"]
    if not isinstance(origin, str):
        raise InvalidOriginError("Claim contents origin is not a string")
    if not is_valid_url(origin):
        raise InvalidOriginError(f"Claim contents origin is not a valid url: {origin!r}")

    if not verify_root_hash(credential):
        raise MalformedClaimError("Root hash does not match the claim contents")

    claimer_signature = credential.claimerSignature
    root_hash = credential.rootHash
    credential_id = to_credential_iri(root_hash)

    await verify_did_signature(
        expected_verification_method="assertionMethod",
        key_uri=claimer_signature.keyUri,
        signature=claimer_signature.signature,
        message=hex_to_bytes(root_hash),
        resolver=resolver,
        expected_signer=did_uri,
    )

    # self-signed proof
    proof = SelfSignedProof(
        type=KILT_SELF_SIGNED_PROOF_TYPE,
        proofPurpose="assertionMethod",
        verificationMethod=claimer_signature.keyUri,
        signature=claimer_signature.signature,
        challenge=claimer_signature.challenge,
    )

    logger.info("Assembled domain linkage presentation for %s at %s", did_uri, origin)
    return DomainLinkagePresentation(
        context=DID_CONFIGURATION_CONTEXT,
        linked_dids=[
            DomainLinkageCredential(
                context=[DID_VC_CONTEXT, DID_CONFIGURATION_CONTEXT],
                id=credential_id,
                issuer=did_uri,
                issuanceDate=format_timestamp(now),
                expirationDate=expiration_date,
                type=[
                    DEFAULT_VERIFIABLECREDENTIAL_TYPE,
                    DOMAIN_LINKAGE_CREDENTIAL_TYPE,
                    KILT_VERIFIABLECREDENTIAL_TYPE,
                ],
                credentialSubject=CredentialSubject(id=did_uri, origin=origin, rootHash=root_hash),
                proof=proof,
            )
        ],
    )
