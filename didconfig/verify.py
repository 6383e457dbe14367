import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import ValidationError

from didconfig.claims import is_valid_url, validate_origin
from didconfig.dids import (
    DidResolver,
    default_resolver,
    first_assertion_key,
    resolve_document,
    validate_did_uri,
    verify_did_signature,
)
from didconfig.errors import (
    CredentialExpiredError,
    DidConfigurationError,
    DidConfigurationFetchError,
    DidMismatchError,
    InvalidOriginError,
    IssuerMismatchError,
    MalformedPresentationError,
    OriginMismatchError,
)
from didconfig.hashing import hex_to_bytes
from didconfig.models import DomainLinkageCredential, DomainLinkagePresentation
from didconfig.presentation import from_credential_iri, parse_timestamp

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/did-configuration.json"


def parse_presentation(data: Union[DomainLinkagePresentation, Dict[str, Any]]) -> DomainLinkagePresentation:
    if isinstance(data, DomainLinkagePresentation):
        return data
    if not isinstance(data, dict):
        raise MalformedPresentationError("DID configuration must be a JSON object")
    try:
        return DomainLinkagePresentation.model_validate(data)
    except ValidationError as e:
        raise MalformedPresentationError(f"Invalid DID configuration: {e}") from e


async def _verify_linked_did(
    did_uri: str,
    credential: DomainLinkageCredential,
    origin: str,
    resolver: DidResolver,
) -> None:
    subject = credential.credentialSubject

    if subject.id != did_uri:
        raise DidMismatchError(f"Credential subject {subject.id} does not match {did_uri}")
    validate_did_uri(subject.id)
    if credential.issuer != subject.id:
        raise IssuerMismatchError(f"Issuer {credential.issuer} does not match credential subject {subject.id}")
    if subject.origin != origin:
        raise OriginMismatchError(f"Credential origin {subject.origin} does not match {origin}")
    if not is_valid_url(origin):
        raise InvalidOriginError(f"Not a valid url: {origin!r}")

    try:
        expires = parse_timestamp(credential.expirationDate)
    except ValueError as e:
        raise MalformedPresentationError(f"Invalid expirationDate {credential.expirationDate!r}") from e
    if expires <= datetime.now(timezone.utc):
        raise CredentialExpiredError(f"Credential {credential.id} expired at {credential.expirationDate}")

    document = await resolve_document(did_uri, resolver)
    first_assertion_key(document)

    # the credential id carries the signed root hash
    root_hash = from_credential_iri(credential.id)

    await verify_did_signature(
        expected_verification_method="assertionMethod",
        key_uri=credential.proof.verificationMethod,
        signature=credential.proof.signature,
        message=hex_to_bytes(root_hash),
        resolver=resolver,
        expected_signer=subject.id,
    )
    logger.debug("Linked DID %s verified for %s", did_uri, origin)


async def verify_did_config_presentation(
    did_uri: str,
    presentation: Union[DomainLinkagePresentation, Dict[str, Any]],
    origin: str,
    *,
    resolver: Optional[DidResolver] = None,
) -> None:
    """Check that every `linked_dids` entry binds `did_uri` to `origin`.

    Entries are verified concurrently; the first failure is raised. See
    https://identity.foundation/.well-known/resources/did-configuration/#did-configuration-resource-verification
    """
    resolver = resolver or default_resolver()
    presentation = parse_presentation(presentation)
    # an empty configuration links nothing, so it cannot vouch for did_uri
    if not presentation.linked_dids:
        raise MalformedPresentationError("DID configuration has no linked_dids")

    try:
        await asyncio.gather(
            *(_verify_linked_did(did_uri, credential, origin, resolver) for credential in presentation.linked_dids)
        )
    except DidConfigurationError as e:
        logger.warning("Rejected DID configuration of %s for %s: %s", origin, did_uri, e)
        raise


def well_known_url(origin: str) -> str:
    return validate_origin(origin).rstrip("/") + WELL_KNOWN_PATH


async def fetch_did_configuration(
    origin: str, *, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0
) -> DomainLinkagePresentation:
    url = well_known_url(origin)
    try:
        if client is not None:
            r = await client.get(url)
        else:
            async with httpx.AsyncClient(timeout=timeout) as c:
                r = await c.get(url)
    except httpx.HTTPError as e:
        raise DidConfigurationFetchError(f"Failed to fetch {url}: {e}") from e

    if r.status_code != 200:
        raise DidConfigurationFetchError(f"Failed to fetch {url}: HTTP {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise DidConfigurationFetchError(f"{url} did not return JSON") from e
    return parse_presentation(data)


async def verify_domain_linkage(
    did_uri: str,
    origin: str,
    *,
    resolver: Optional[DidResolver] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> DomainLinkagePresentation:
    """Fetch the DID configuration published at `origin` and verify it for `did_uri`."""
    presentation = await fetch_did_configuration(origin, client=client)
    await verify_did_config_presentation(did_uri, presentation, origin, resolver=resolver)
    return presentation
