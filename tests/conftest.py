import pytest
import pytest_asyncio

from didconfig.dids import JwkDidResolver, assertion_signer, generate_jwk_did, resolve_document


@pytest.fixture
def resolver():
    return JwkDidResolver()


@pytest.fixture
def identity():
    return generate_jwk_did()


@pytest.fixture
def other_identity():
    return generate_jwk_did()


@pytest.fixture
def encryption_identity():
    """A did:jwk whose only key is an X25519 key agreement key."""
    return generate_jwk_did(crv="X25519", use="enc")


@pytest_asyncio.fixture
async def did_document(identity, resolver):
    return await resolve_document(identity["did"], resolver)


@pytest.fixture
def signer(identity, did_document):
    return assertion_signer(identity["private_jwk"], did_document)
