# PixelVault - Main Package
#
# Two-secret encrypted vault: an account secret opens a session, a separate
# master secret unlocks the vault. Entries (credentials, notes, files) are
# encrypted client-side; the server stores ciphertext only.

__version__ = "0.1.0"
__description__ = "Two-secret encrypted vault for credentials, notes and files"

__all__ = ["__version__"]
