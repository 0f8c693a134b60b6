"""NFT metadata document schema."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NFTAttribute(BaseModel):
    """A single trait entry of an NFT."""

    model_config = ConfigDict(extra="allow")

    trait_type: str = ""
    value: Any = None


class NFTMetadata(BaseModel):
    """Descriptive document produced by the generator for one artifact.

    The generator owns the schema, so every field is optional and unknown keys
    are preserved. Only ``image`` is rewritten, to point at the published
    artifact before upload.
    """

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    image: str = ""
    edition: int | None = None
    attributes: list[NFTAttribute] = Field(default_factory=list)

    def to_document(self) -> bytes:
        """Serialize to the UTF-8 JSON bytes that are published.

        Only keys present in the generated document (plus ``image``) are
        written, with their values unchanged.
        """
        return self.model_dump_json(exclude_unset=True).encode("utf-8")
