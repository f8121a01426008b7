"""Decrypted vault entries.

The plaintext shape of an entry exists only on the client. It is a tagged
variant keyed by ``kind``; deserialization validates the fields of exactly
one variant and rejects anything else, so a malformed or foreign payload
fails as ``InvalidPayload`` instead of producing a half-populated object.

File content travels inside the encrypted payload as a self-describing
``data:<media_type>;base64,...`` URL.
"""

import base64
import binascii
import mimetypes
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_serializer,
    model_validator,
)

from ..errors import InvalidEdit, InvalidPayload

ENTRY_KINDS = ("credential", "note", "file")

DEFAULT_CATEGORY = "general"
DEFAULT_MEDIA_TYPE = "application/octet-stream"


class _EntryBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    category: str = DEFAULT_CATEGORY


class CredentialEntry(_EntryBase):
    """A stored login for some service."""
    kind: Literal["credential"] = "credential"
    service: str = Field(..., min_length=1)
    username: str = ""
    secret: str
    url: Optional[str] = None


class NoteEntry(_EntryBase):
    """Free-text note."""
    kind: Literal["note"] = "note"
    title: str = Field(..., min_length=1)
    body: str = ""


class FileEntry(_EntryBase):
    """An uploaded file with its metadata."""
    kind: Literal["file"] = "file"
    title: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    # Embedded in the data URL header, so no parameters or separators
    media_type: str = Field(DEFAULT_MEDIA_TYPE, pattern=r"^[^;,\s]+$")
    size: int = Field(..., ge=0)
    content: bytes

    @model_validator(mode="before")
    @classmethod
    def _decode_content(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        content = data.get("content")
        if isinstance(content, str):
            media_type, raw = _parse_data_url(content)
            declared = data.setdefault("media_type", media_type)
            if declared != media_type:
                raise ValueError("media type does not match content")
            data["content"] = raw
        if "size" not in data and isinstance(data.get("content"), (bytes, bytearray)):
            data["size"] = len(data["content"])
        return data

    @model_validator(mode="after")
    def _check_size(self) -> "FileEntry":
        if self.size != len(self.content):
            raise ValueError("size does not match content length")
        return self

    @field_serializer("content")
    def _encode_content(self, content: bytes) -> str:
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"

    @classmethod
    def from_bytes(
        cls,
        title: str,
        filename: str,
        data: bytes,
        media_type: Optional[str] = None,
        category: str = DEFAULT_CATEGORY,
    ) -> "FileEntry":
        """Build a file entry, guessing the media type from the filename."""
        if not media_type:
            media_type = mimetypes.guess_type(filename)[0] or DEFAULT_MEDIA_TYPE
        return cls(
            title=title,
            category=category,
            filename=filename,
            media_type=media_type,
            size=len(data),
            content=data,
        )


def _parse_data_url(value: str):
    if not value.startswith("data:") or ";base64," not in value:
        raise ValueError("file content must be a base64 data URL")
    header, _, payload = value[5:].partition(";base64,")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("file content is not valid base64")
    return header or DEFAULT_MEDIA_TYPE, raw


VaultEntry = Annotated[
    Union[CredentialEntry, NoteEntry, FileEntry],
    Field(discriminator="kind"),
]

_ENTRY_ADAPTER = TypeAdapter(VaultEntry)


def serialize_entry(entry: VaultEntry) -> bytes:
    """Entry → UTF-8 JSON bytes (the plaintext that gets encrypted)."""
    return entry.model_dump_json().encode("utf-8")


def deserialize_entry(data: bytes, expected_kind: Optional[str] = None) -> VaultEntry:
    """UTF-8 JSON bytes → entry.

    Raises:
        InvalidPayload: Not valid JSON, unknown kind, missing or extra
            fields, or a kind other than ``expected_kind``.
    """
    try:
        entry = _ENTRY_ADAPTER.validate_json(data)
    except ValidationError as e:
        raise InvalidPayload(f"Entry payload failed validation ({e.error_count()} errors)")
    if expected_kind is not None and entry.kind != expected_kind:
        raise InvalidPayload("Entry payload kind does not match its record")
    return entry


# ── File edits ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class KeepContent:
    """Keep the stored file's bytes, filename and media type."""


@dataclass(frozen=True)
class ReplaceContent:
    """Swap in new file bytes."""
    filename: str
    data: bytes
    media_type: Optional[str] = None


@dataclass(frozen=True)
class FileEdit:
    """Edit a file entry's metadata, optionally replacing its content."""
    title: str
    category: str = DEFAULT_CATEGORY
    content: Union[KeepContent, ReplaceContent] = field(default_factory=KeepContent)

    def apply(self, existing: Optional[FileEntry]) -> FileEntry:
        if isinstance(self.content, ReplaceContent):
            return FileEntry.from_bytes(
                title=self.title,
                filename=self.content.filename,
                data=self.content.data,
                media_type=self.content.media_type,
                category=self.category,
            )
        if existing is None:
            raise InvalidEdit("Keeping file content needs an existing file entry")
        return FileEntry.model_validate(
            {**existing.model_dump(), "title": self.title, "category": self.category}
        )


@dataclass
class VaultItem:
    """A decrypted entry plus the server-owned identity and timestamps."""
    id: str
    kind: str
    entry: VaultEntry
    created_at: str
    updated_at: str
