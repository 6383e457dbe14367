import os

# Universal-resolver compatible endpoint used for DID methods not resolved locally
RESOLVER_URL = os.getenv("DIDCONFIG_RESOLVER_URL", "https://dev.uniresolver.io")
HTTP_TIMEOUT = float(os.getenv("DIDCONFIG_HTTP_TIMEOUT", "10"))

# Identity used by the hosting service to issue its own domain linkage credential
DID = os.getenv("DIDCONFIG_DID", "")
PRIVATE_JWK_PATH = os.getenv("DIDCONFIG_PRIVATE_JWK_PATH", "keys/assertion.jwk.json")
PRESENTATION_PATH = os.getenv("DIDCONFIG_PRESENTATION_PATH", "did-configuration.json")

LOG_LEVEL = os.getenv("DIDCONFIG_LOG_LEVEL", "INFO")
