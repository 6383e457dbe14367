import httpx
import pytest

from didconfig.dids import (
    CompositeDidResolver,
    HttpDidResolver,
    JwkDidResolver,
    assertion_signer,
    document_from_json,
    parse_key_uri,
    resolve_document,
    validate_did_uri,
    verify_did_signature,
)
from didconfig.errors import (
    DidResolutionError,
    InvalidDidError,
    MissingAssertionKeyError,
    SignatureVerificationError,
    UnsupportedKeyTypeError,
)
from didconfig.issuer import create_credential
from didconfig.models import DidResolutionResult, SignRequest
from didconfig.presentation import get_domain_linkage_presentation
from didconfig.verify import verify_did_config_presentation

EXAMPLE_DID = "did:example:123"


def example_document(public_jwk):
    return {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": EXAMPLE_DID,
        "verificationMethod": [
            {
                "id": f"{EXAMPLE_DID}#key-1",
                "type": "JsonWebKey2020",
                "controller": EXAMPLE_DID,
                "publicKeyJwk": public_jwk,
            },
            {
                "id": f"{EXAMPLE_DID}#key-2",
                "type": "Ed25519VerificationKey2020",
                "controller": EXAMPLE_DID,
                "publicKeyMultibase": "z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK",
            },
        ],
        "authentication": ["#key-1"],
        "assertionMethod": [f"{EXAMPLE_DID}#key-1", f"{EXAMPLE_DID}#key-2"],
    }


def universal_resolver(document):
    def handler(request):
        if request.url.path == f"/1.0/identifiers/{EXAMPLE_DID}":
            return httpx.Response(200, json={"didDocument": document, "didResolutionMetadata": {}})
        if request.url.path.endswith("did:example:broken"):
            return httpx.Response(500, text="boom")
        return httpx.Response(404, json={"error": "notFound"})

    return HttpDidResolver("https://resolver.example", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize(
    "did",
    ["did:example:123", "did:jwk:eyJrdHkiOiJPS1AifQ", "did:web:example.com:user:alice", "did:web:localhost%3A3927"],
)
def test_validate_did_uri_accepts(did):
    assert validate_did_uri(did) == did


@pytest.mark.parametrize(
    "did",
    ["not-a-did", "did:example", "did:Example:123", "did:example:123#key-1", "did:example:123/path", "did:example:", None],
)
def test_validate_did_uri_rejects(did):
    with pytest.raises(InvalidDidError):
        validate_did_uri(did)


def test_parse_key_uri():
    assert parse_key_uri("did:example:123#key-1") == ("did:example:123", "#key-1")
    with pytest.raises(InvalidDidError):
        parse_key_uri("did:example:123")
    with pytest.raises(InvalidDidError):
        parse_key_uri("did:example:123#")


@pytest.mark.asyncio
async def test_jwk_resolver_signing_key(identity, resolver):
    document = await resolve_document(identity["did"], resolver)
    assert document.uri == identity["did"]
    assert [m.id for m in document.assertionMethod] == ["#0"]
    assert [m.id for m in document.authentication] == ["#0"]
    assert document.keyAgreement[0].publicKeyJwk == identity["public_jwk"]


@pytest.mark.asyncio
async def test_jwk_resolver_encryption_key(encryption_identity, resolver):
    document = await resolve_document(encryption_identity["did"], resolver)
    assert document.assertionMethod is None
    assert document.authentication == []
    assert [m.id for m in document.keyAgreement] == ["#0"]


@pytest.mark.asyncio
@pytest.mark.parametrize("did", ["did:web:example.com", "did:jwk:%%%", "did:jwk:WzFd"])
async def test_jwk_resolver_not_found(resolver, did):
    result = await resolver.resolve(did)
    assert result.document is None


def test_document_from_json_normalizes_key_ids(identity):
    document = document_from_json(example_document(identity["public_jwk"]))
    assert document.uri == EXAMPLE_DID
    assert [m.id for m in document.assertionMethod] == ["#key-1"]
    assert [m.id for m in document.authentication] == ["#key-1"]
    assert document.keyAgreement is None


def test_document_from_json_rejects_foreign_keys(identity):
    data = example_document(identity["public_jwk"])
    data["assertionMethod"] = ["did:example:456#key-1"]
    with pytest.raises(ValueError):
        document_from_json(data)


@pytest.mark.asyncio
async def test_http_resolver(identity):
    resolver = universal_resolver(example_document(identity["public_jwk"]))

    document = await resolve_document(EXAMPLE_DID, resolver)
    assert document.assertionMethod[0].publicKeyJwk == identity["public_jwk"]

    assert (await resolver.resolve("did:example:missing")).document is None
    with pytest.raises(DidResolutionError):
        await resolver.resolve("did:example:broken")


@pytest.mark.asyncio
async def test_http_resolver_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    resolver = HttpDidResolver("https://resolver.example", client=client)
    with pytest.raises(DidResolutionError):
        await resolver.resolve(EXAMPLE_DID)


@pytest.mark.asyncio
async def test_composite_resolver_dispatches_by_method(identity):
    resolver = CompositeDidResolver({"jwk": JwkDidResolver()})
    assert (await resolver.resolve(identity["did"])).document is not None
    assert (await resolver.resolve(EXAMPLE_DID)).document is None
    assert (await resolver.resolve("not-a-did")).document is None


@pytest.mark.asyncio
async def test_round_trip_through_http_resolver(identity):
    origin = "https://example.com"
    resolver = CompositeDidResolver(
        {"jwk": JwkDidResolver()}, fallback=universal_resolver(example_document(identity["public_jwk"]))
    )
    document = await resolve_document(EXAMPLE_DID, resolver)
    signer = assertion_signer(identity["private_jwk"], document)

    credential = await create_credential(signer, origin, EXAMPLE_DID, resolver=resolver)
    assert credential.claimerSignature.keyUri == f"{EXAMPLE_DID}#key-1"

    presentation = await get_domain_linkage_presentation(credential, resolver=resolver)
    await verify_did_config_presentation(EXAMPLE_DID, presentation, origin, resolver=resolver)


@pytest.mark.asyncio
async def test_assertion_signer_signs_with_assertion_key(identity, did_document, resolver):
    signer = assertion_signer(identity["private_jwk"], did_document)
    signed = await signer(SignRequest(data=b"payload", did=identity["did"]))
    assert signed.key_uri == f"{identity['did']}#0"
    assert signed.key_type == "ed25519"

    await verify_did_signature(
        expected_verification_method="assertionMethod",
        key_uri=signed.key_uri,
        signature="0x" + signed.signature.hex(),
        message=b"payload",
        resolver=resolver,
    )


@pytest.mark.asyncio
async def test_assertion_signer_rejects_foreign_key(other_identity, did_document):
    with pytest.raises(MissingAssertionKeyError):
        assertion_signer(other_identity["private_jwk"], did_document)


@pytest.mark.asyncio
async def test_assertion_signer_requires_assertion_key(encryption_identity, resolver):
    document = await resolve_document(encryption_identity["did"], resolver)
    with pytest.raises(MissingAssertionKeyError):
        assertion_signer(encryption_identity["private_jwk"], document)


@pytest.mark.asyncio
async def test_verify_did_signature_checks_relationship(identity, signer, resolver):
    signed = await signer(SignRequest(data=b"payload", did=identity["did"]))
    with pytest.raises(SignatureVerificationError):
        await verify_did_signature(
            expected_verification_method="capabilityInvocation",
            key_uri=signed.key_uri,
            signature="0x" + signed.signature.hex(),
            message=b"payload",
            resolver=resolver,
        )


@pytest.mark.asyncio
async def test_verify_did_signature_rejects_key_agreement_key(encryption_identity, resolver):
    with pytest.raises(SignatureVerificationError):
        await verify_did_signature(
            expected_verification_method="assertionMethod",
            key_uri=f"{encryption_identity['did']}#0",
            signature="0x" + "00" * 64,
            message=b"payload",
            resolver=resolver,
        )


@pytest.mark.asyncio
async def test_verify_did_signature_rejects_unsupported_key_type(resolver):
    ec_jwk = {"kty": "EC", "crv": "P-256", "x": "f83OJ3D2xF1Bg8vub9tLe1gHMzV76e8Tus9uPHvRVEU",
              "y": "x_FEzRu9m36HLN_tue659LNpXW6pCyStikYjKIWI5a0"}
    document = document_from_json(
        {
            "id": EXAMPLE_DID,
            "verificationMethod": [
                {"id": "#ec", "type": "JsonWebKey2020", "controller": EXAMPLE_DID, "publicKeyJwk": ec_jwk}
            ],
            "assertionMethod": ["#ec"],
        }
    )

    class StaticResolver:
        async def resolve(self, did):
            return DidResolutionResult(document=document if did == EXAMPLE_DID else None)

    with pytest.raises(UnsupportedKeyTypeError):
        await verify_did_signature(
            expected_verification_method="assertionMethod",
            key_uri=f"{EXAMPLE_DID}#ec",
            signature="0x" + "00" * 64,
            message=b"payload",
            resolver=StaticResolver(),
        )
