"""
Search query data model for the filesystem explorer engine.

A query carries a case-insensitive name substring, an optional exact extension
filter, and an optional request id that is echoed back on the results so a
caller can tell which of several in-flight queries a result belongs to.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class SearchQuery(BaseModel):
    """
    Represents one name/extension search request.

    Attributes:
        name_pattern: Case-insensitive substring matched against entry names;
            empty matches everything
        extension: Exact case-insensitive extension filter; empty means any
        request_id: Caller-chosen id echoed back on the results
        max_results: Optional cap on the number of returned entries
    """

    name_pattern: str = Field("", description="Case-insensitive name substring")
    extension: str = Field("", description="Exact extension filter (without dot)")
    request_id: Optional[int] = Field(None, ge=0, description="Caller-chosen request id")
    max_results: Optional[int] = Field(None, gt=0, description="Maximum number of results")

    @field_validator('name_pattern', mode='before')
    @classmethod
    def validate_name_pattern(cls, v) -> str:
        """Treat a missing pattern as 'match everything'."""
        if v is None:
            return ""
        return str(v)

    @field_validator('extension', mode='before')
    @classmethod
    def validate_extension(cls, v) -> str:
        """Normalize extension: strip whitespace and leading dot, lowercase."""
        if v is None:
            return ""
        return str(v).strip().lstrip('.').lower()

    @property
    def folded_pattern(self) -> str:
        """Name pattern folded for case-insensitive comparison."""
        return self.name_pattern.casefold()

    def has_name_filter(self) -> bool:
        return self.name_pattern != ""

    def has_extension_filter(self) -> bool:
        return self.extension != ""

    def matches(self, name: str, extension: Optional[str]) -> bool:
        """
        Check whether an entry with ``name`` and ``extension`` satisfies this query.

        Both filters are ANDed. Entries without an extension (directories and
        extensionless files) only pass when no extension filter is set.
        """
        if self.has_extension_filter() and (extension or "") != self.extension:
            return False
        return self.folded_pattern in name.casefold()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the search query to a dictionary representation."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchQuery':
        """Create a SearchQuery instance from a dictionary."""
        return cls.model_validate(data)

    def __str__(self) -> str:
        parts = [f"Name: '{self.name_pattern}'"]
        if self.has_extension_filter():
            parts.append(f"Extension: {self.extension}")
        if self.request_id is not None:
            parts.append(f"Request: {self.request_id}")
        return " | ".join(parts)
