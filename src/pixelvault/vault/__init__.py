# Vault Module - Encrypted Entries
#
# Per-entry AES-256-GCM envelope encryption under a PBKDF2 key derived from
# the master secret. The server stores ciphertext only; decrypted entries
# live in a client-side VaultContext.

from .encryption import EnvelopeCipher, decrypt, encrypt
from .entries import (
    ENTRY_KINDS,
    CredentialEntry,
    FileEdit,
    FileEntry,
    KeepContent,
    NoteEntry,
    ReplaceContent,
    VaultItem,
)
from .entry_store import EntryRecord, EntryStore
from .vault_controller import VaultContext, VaultController

__all__ = [
    "ENTRY_KINDS",
    "CredentialEntry",
    "EntryRecord",
    "EntryStore",
    "EnvelopeCipher",
    "FileEdit",
    "FileEntry",
    "KeepContent",
    "NoteEntry",
    "ReplaceContent",
    "VaultContext",
    "VaultController",
    "VaultItem",
    "decrypt",
    "encrypt",
]
