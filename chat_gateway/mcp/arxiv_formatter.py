"""arXiv result formatting utilities.

Renders parsed arXiv entries as the Markdown text returned to the model.
"""
from typing import List, Optional

from .models import ArxivEntry

CONTENT_TRUNCATION_NOTICE = (
    "\n\n...(content truncated, visit the paper link for the full text)"
)


def _format_date(timestamp: str) -> str:
    """Keep the date part of an ISO 8601 timestamp."""
    return timestamp[:10] if timestamp else "unknown"


def format_paper_entry(entry: ArxivEntry, index: Optional[int] = None) -> str:
    """Format a single paper as a Markdown section.
    
    Args:
        entry: Parsed arXiv entry
        index: Zero-based rank in a result list, if any
    """
    prefix = f"## {index + 1}. " if index is not None else "## "
    
    return (
        f"{prefix}{entry.title}\n"
        f"\n"
        f"**arXiv ID:** {entry.id}\n"
        f"**Authors:** {', '.join(entry.authors)}\n"
        f"**Published:** {_format_date(entry.published)}\n"
        f"**Updated:** {_format_date(entry.updated)}\n"
        f"**Categories:** {', '.join(entry.categories)}\n"
        f"\n"
        f"**Abstract:**\n"
        f"{entry.summary}\n"
        f"\n"
        f"**Links:**\n"
        f"- arXiv: {entry.abs_url}\n"
        f"- PDF: {entry.pdf_url}\n"
        f"- HTML: {entry.html_url}\n"
    )


def format_search_results(query: str, entries: List[ArxivEntry]) -> str:
    """Format a ranked list of search results."""
    formatted = "\n---\n\n".join(
        format_paper_entry(entry, i) for i, entry in enumerate(entries)
    )
    return (
        f"# arXiv search results: \"{query}\"\n"
        f"\n"
        f"Found {len(entries)} paper(s):\n"
        f"\n"
        f"{formatted}"
    )


def format_no_results(query: str) -> str:
    """Guidance returned when a search matches nothing."""
    return (
        f"No papers found for \"{query}\". Try other keywords or the advanced "
        f"search syntax:\n"
        f"- ti:keyword - search titles\n"
        f"- au:name - search authors\n"
        f"- abs:keyword - search abstracts\n"
        f"- cat:category - search categories (e.g. cs.CL, cs.AI)"
    )


def truncate_content(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + CONTENT_TRUNCATION_NOTICE


def format_paper_details(
    entry: ArxivEntry,
    content: Optional[str] = None,
    content_error: Optional[str] = None
) -> str:
    """Format a fetched paper, with its HTML text or a note on why it is missing."""
    result = f"# {entry.title}\n\n{format_paper_entry(entry)}"
    
    if content:
        result += f"\n---\n\n# Paper content\n\n{content}"
    elif content_error:
        result += (
            f"\n\n*Note: could not fetch the HTML content ({content_error}); "
            f"please open the paper link directly.*"
        )
    
    return result
