from typing import List, Optional
from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

QUERY_PLACEHOLDER = "{query}"
NO_TITLE = "(no title)"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SiteDescriptor(_CamelModel):
    """Configuration record for one target site."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, description="Stable identifier, unique within the registry")
    name: str = Field("", description="Display name; defaults to the id")
    url_template: str = Field(
        ...,
        validation_alias=AliasChoices("urlTemplate", "template", "url_template"),
        description="Search URL containing the {query} placeholder",
    )
    result_selector: str = Field(..., min_length=1, description="Selector for each result node")
    link_selector: str = Field("a", description="Selector for the result link, scoped to the result node")
    title_selector: str = Field("", description="Selector for the title; defaults to link_selector")
    snippet_selector: str = Field("", description="Selector for the snippet; empty means no snippet")
    enabled: bool = True

    @field_validator("link_selector", "title_selector", "snippet_selector", mode="before")
    def none_to_empty(cls, v):
        return "" if v is None else v

    @model_validator(mode="after")
    def apply_defaults(self):
        # frozen model: defaults are filled through object.__setattr__
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if not self.link_selector:
            object.__setattr__(self, "link_selector", "a")
        if not self.title_selector:
            object.__setattr__(self, "title_selector", self.link_selector)
        return self


class SearchResultItem(_CamelModel):
    """Normalized data model for a single scraped result."""
    title: str = Field(..., min_length=1, description="Result title, never empty")
    url: str = Field(..., description="Absolute link to the result")
    snippet: str = Field("", description="Short summary text, possibly empty")


class SitePipelineOutcome(_CamelModel):
    """Per-site outcome of one fetch-then-extract pipeline."""
    site_id: str
    site_name: str
    url: str = Field(..., description="The constructed search URL")
    ok: bool
    error: Optional[str] = None
    manual_url: Optional[str] = Field(None, description="Fallback URL the user can open by hand")
    detail: Optional[str] = Field(None, exclude=True, description="Failure message without its stage prefix")
    items: List[SearchResultItem] = Field(default_factory=list)
    elapsed_ms: int = 0

    @classmethod
    def success(cls, site: SiteDescriptor, url: str, items: List[SearchResultItem], elapsed_ms: int):
        return cls(
            site_id=site.id,
            site_name=site.name,
            url=url,
            ok=True,
            items=items,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def failure(cls, site: SiteDescriptor, url: str, error: str, elapsed_ms: int, detail: Optional[str] = None):
        return cls(
            site_id=site.id,
            site_name=site.name,
            url=url,
            ok=False,
            error=error,
            detail=detail or error,
            manual_url=url,
            items=[],
            elapsed_ms=elapsed_ms,
        )


class AggregatedResponse(_CamelModel):
    """Container for the full fan-out search response."""
    query: str
    timestamp: str = Field(default_factory=utc_timestamp)
    results: List[SitePipelineOutcome]
