"""Page extraction results.

``PageResult`` is what the caller gets back from ``execute`` and what the
response cache stores: either the structured ``PageContent`` of the page,
or a ``PageError`` describing why the request could not complete.
"""

from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _PageModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Heading(_PageModel):
    level: str
    text: str = ""


class Link(_PageModel):
    text: str = ""
    href: str = ""
    aria_label: str | None = None


class PageContent(_PageModel):
    """Structured snapshot of a loaded page."""

    title: str = ""
    meta: dict[str, str] = Field(default_factory=dict)
    headings: list[Heading] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)
    text: list[str] = Field(default_factory=list)
    tables: list[list[list[str]]] = Field(default_factory=list)


class PageError(_PageModel):
    """Error-shaped result.

    ``partial`` holds a best-effort extraction when the page loaded but a
    later stage (typically a scripted action) failed.
    """

    error: str
    url: str
    partial: PageContent | None = None


PageResult = Union[PageContent, PageError]


def is_error(result: PageResult) -> bool:
    return isinstance(result, PageError)
