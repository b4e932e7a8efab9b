"""
verifier — reproducible-build verification for canister upgrade proposals.

Resolve free-text build instructions, rebuild the canister WASM at the
proposal's commit, locate the artifact and compare its SHA-256 (and the
hash of the Candid-encoded upgrade arguments) against the values carried
in the proposal payload.
"""

__version__ = "0.3.0"
VERIFIER_VERSION = "v0.3"
PACKAGE_NAME = "verifier"
SCHEMA_VERSION = "0.3"
