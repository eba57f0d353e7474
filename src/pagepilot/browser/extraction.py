"""Declarative page-content extraction.

An ``ExtractionSchema`` names the selectors for each section of the
snapshot; a single generic script evaluates it inside the page and the
result is validated into a typed ``PageContent``. Changing what gets
extracted means changing the schema, not the script.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from pagepilot.models.page import PageContent

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


class ExtractionSchema(BaseModel):
    """Selectors for each section of a page snapshot."""

    meta: str = "meta"
    headings: str = "h1, h2, h3"
    links: str = "a"
    text: str = "p, article, section"
    tables: str = "table"
    rows: str = "tr"
    cells: str = "td, th"


DEFAULT_SCHEMA = ExtractionSchema()

# Receives the schema as its argument; returns the camelCase shape of PageContent.
_EXTRACT_JS = """
(schema) => {
  const clean = (el) => ((el && el.innerText) || '').trim();
  const data = { title: document.title || '', meta: {}, headings: [], links: [], text: [], tables: [] };

  document.querySelectorAll(schema.meta).forEach((meta) => {
    const name = meta.getAttribute('name') || meta.getAttribute('property');
    const content = meta.getAttribute('content');
    if (name && content) data.meta[name] = content;
  });

  document.querySelectorAll(schema.headings).forEach((heading) => {
    data.headings.push({ level: heading.tagName, text: clean(heading) });
  });

  document.querySelectorAll(schema.links).forEach((link) => {
    data.links.push({
      text: clean(link),
      href: link.href || '',
      ariaLabel: link.getAttribute('aria-label'),
    });
  });

  document.querySelectorAll(schema.text).forEach((el) => {
    const text = clean(el);
    if (text) data.text.push(text);
  });

  document.querySelectorAll(schema.tables).forEach((table) => {
    const rows = [];
    table.querySelectorAll(schema.rows).forEach((row) => {
      const cells = [];
      row.querySelectorAll(schema.cells).forEach((cell) => cells.push(clean(cell)));
      rows.push(cells);
    });
    data.tables.push(rows);
  });

  return data;
}
"""


async def extract_page(page: Page, schema: ExtractionSchema = DEFAULT_SCHEMA) -> PageContent:
    """Evaluate *schema* in *page* and return the typed snapshot."""
    raw = await page.evaluate(_EXTRACT_JS, schema.model_dump())
    content = PageContent.model_validate(raw or {})
    logger.debug(
        "Extracted %r: %d headings, %d links, %d text blocks, %d tables",
        content.title[:60],
        len(content.headings),
        len(content.links),
        len(content.text),
        len(content.tables),
    )
    return content
