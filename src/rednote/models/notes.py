from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

FETCH_FAILED_CONTENT = "Failed to get content"
NO_CONTENT = "No content"


class LinkReference(BaseModel):
    """One note card discovered on a listing page.

    Only carries what is needed to schedule a detail fetch. The position of
    a reference in its list decides the position of its record in the output.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    author_stub: str


class DetailRecord(BaseModel):
    """A fully fetched note. ``link`` is the identity key."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    content: str
    author: str
    author_desc: str | None = Field(default=None, alias="authorDesc")
    link: str
    likes: int | None = None
    collects: int | None = None
    comments: int | None = None
    tags: list[str] | None = None
    images: list[str] | None = None

    @property
    def degraded(self) -> bool:
        return self.content == FETCH_FAILED_CONTENT

    @classmethod
    def degraded_from(cls, ref: LinkReference) -> DetailRecord:
        """Placeholder record for a note whose detail page could not be read."""
        return cls(
            title=ref.title,
            content=FETCH_FAILED_CONTENT,
            author=ref.author_stub,
            link=ref.url,
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
