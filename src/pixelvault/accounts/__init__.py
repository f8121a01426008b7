# Accounts Module - Credential Store
#
# Account identities plus bcrypt verifiers for the account secret (login)
# and the independent master secret (vault unlock).

from .credential_store import Account, CredentialStore, check_secret_strength

__all__ = ["Account", "CredentialStore", "check_secret_strength"]
