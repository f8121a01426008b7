"""
PixelVault Exception Classes

Every error carries the HTTP status the API answers with and a public
message that is safe to show to any caller. The public message never says
which secret was wrong or whether an entry exists under another account.
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    status_code = 500
    public_message = "Internal server error"
    # When set, str(error) is safe to return to the caller verbatim.
    expose_detail = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.public_message)


class InvalidCredential(VaultError):
    """Raised when an account secret or master secret does not match"""
    status_code = 401
    public_message = "Invalid credentials"


class NotAuthenticated(VaultError):
    """Raised when no valid session backs the request"""
    status_code = 401
    public_message = "Not authenticated"


class VaultLocked(VaultError):
    """Raised when the session is authenticated but the vault is not unlocked"""
    status_code = 403
    public_message = "Vault is locked. Verify the master password first."


class DuplicateIdentity(VaultError):
    """Raised when a handle or contact address is already taken"""
    status_code = 409
    public_message = "Username or email already exists"


class WeakSecret(VaultError):
    """Raised when a new secret is below the minimum length"""
    status_code = 400
    public_message = "Secret is too short"
    expose_detail = True


class NotFound(VaultError):
    """Raised when an entry is absent or owned by another account"""
    status_code = 404
    public_message = "Entry not found"


class InvalidKind(VaultError):
    """Raised when an entry kind is not credential, note or file"""
    status_code = 400
    public_message = "Invalid entry kind"


class PayloadTooLarge(VaultError):
    """Raised when a ciphertext blob exceeds the store ceiling"""
    status_code = 413
    public_message = "Payload too large"


class DecryptionFailed(VaultError):
    """Raised when a blob cannot be opened (wrong key or corrupted data)"""
    status_code = 422
    public_message = "Entry could not be decrypted"


class InvalidPayload(DecryptionFailed):
    """Raised when an authenticated blob does not hold a valid entry"""
    public_message = "Entry payload is malformed"


class StaleEntrySet(VaultError):
    """Raised when a staged re-encryption no longer covers the account's entries"""
    status_code = 409
    public_message = "Vault changed while re-encrypting. Reload and try again."


class InvalidEdit(VaultError):
    """Raised when a file edit keeps content but there is no file to keep it from"""
    status_code = 400
    public_message = "File edit needs an existing file entry"
    expose_detail = True
