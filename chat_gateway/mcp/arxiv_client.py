"""Local arXiv tool provider.

Offers ``arxiv_search`` and ``arxiv_fetch`` with the same call contract as
an MCP client, implemented as direct calls to the arXiv Atom API and the
ar5iv HTML mirror.
"""
import html
import re
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, get_settings
from ..utils.logger import get_logger
from .arxiv_formatter import (
    format_no_results,
    format_paper_details,
    format_search_results,
    truncate_content,
)
from .config import ARXIV_SERVER_ID
from .exceptions import TransportError
from .input_sanitizer import (
    SORT_BY_VALUES,
    SORT_ORDER_VALUES,
    clamp_max_results,
    normalize_choice,
    parse_arxiv_id,
    strip_version,
)
from .models import ArxivEntry, ToolCallResult, ToolDescriptor

logger = get_logger(__name__)

ARXIV_TOOLS = (
    ToolDescriptor(
        name="arxiv_search",
        description=(
            "Search arXiv papers by keyword, author or title. Returns titles, "
            "abstracts, authors, dates and links of the most relevant papers."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        "Search terms: keywords, a title or an author name. Supports "
                        "field prefixes such as \"ti:attention\" (title), \"au:vaswani\" "
                        "(author), \"abs:transformer\" (abstract) and \"cat:cs.CL\" (category)."
                    ),
                },
                "maxResults": {
                    "type": "number",
                    "description": "Maximum number of results (default 5, at most 10)",
                    "default": 5,
                },
                "sortBy": {
                    "type": "string",
                    "description": "Sort criterion",
                    "enum": list(SORT_BY_VALUES),
                    "default": "relevance",
                },
                "sortOrder": {
                    "type": "string",
                    "description": "Sort order",
                    "enum": list(SORT_ORDER_VALUES),
                    "default": "descending",
                },
            },
            "required": ["query"],
        },
    ),
    ToolDescriptor(
        name="arxiv_fetch",
        description=(
            "Fetch an arXiv paper by URL or id, with its metadata and, when "
            "available, its full text from ar5iv."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": (
                        "arXiv URL (e.g. https://arxiv.org/abs/2509.06917) or paper id "
                        "(e.g. 2509.06917)"
                    ),
                },
                "includeContent": {
                    "type": "boolean",
                    "description": "Whether to fetch the HTML content of the paper from ar5iv.org",
                    "default": True,
                },
            },
            "required": ["url"],
        },
    ),
)

_ENTRY_PATTERN = re.compile(r'<entry>([\s\S]*?)</entry>')
_ID_PATTERN = re.compile(r'<id>(.*?)</id>')
_TITLE_PATTERN = re.compile(r'<title>([\s\S]*?)</title>')
_SUMMARY_PATTERN = re.compile(r'<summary>([\s\S]*?)</summary>')
_AUTHOR_PATTERN = re.compile(r'<author>[\s\S]*?<name>(.*?)</name>[\s\S]*?</author>')
_PUBLISHED_PATTERN = re.compile(r'<published>(.*?)</published>')
_UPDATED_PATTERN = re.compile(r'<updated>(.*?)</updated>')
_LINK_PATTERN = re.compile(r'<link\s+([^>]*)/>')
_CATEGORY_PATTERN = re.compile(r'<category[^>]*term="([^"]*)"[^>]*/>')
_PRIMARY_CATEGORY_PATTERN = re.compile(r'<arxiv:primary_category[^>]*term="([^"]*)"[^>]*/>')
_WHITESPACE_PATTERN = re.compile(r'\s+')

_REMOVED_BLOCKS = ("script", "style", "nav", "header", "footer")


def _match(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text)
    return match.group(1) if match else ""


def _clean_text(text: str) -> str:
    return html.unescape(_WHITESPACE_PATTERN.sub(' ', text.strip()))


def _attribute(attrs: str, name: str) -> Optional[str]:
    match = re.search(rf'{name}="([^"]*)"', attrs)
    return match.group(1) if match else None


def parse_arxiv_feed(xml: str, ar5iv_base: str = "https://ar5iv.org") -> List[ArxivEntry]:
    """Parse the entries of an arXiv Atom feed."""
    entries = []
    
    for entry_match in _ENTRY_PATTERN.finditer(xml):
        entry_xml = entry_match.group(1)
        
        entry_id = _match(_ID_PATTERN, entry_xml)
        entry_id = re.sub(r'^https?://arxiv\.org/abs/', '', entry_id.strip())
        base_id = strip_version(entry_id)
        
        links = []
        for link_match in _LINK_PATTERN.finditer(entry_xml):
            attrs = link_match.group(1)
            href = _attribute(attrs, "href")
            if not href:
                continue
            link = {"href": href}
            for key in ("type", "title"):
                value = _attribute(attrs, key)
                if value is not None:
                    link[key] = value
            links.append(link)
        
        pdf_link = next((link["href"] for link in links if link.get("title") == "pdf"), None)
        
        entries.append(ArxivEntry(
            id=entry_id,
            title=_clean_text(_match(_TITLE_PATTERN, entry_xml)),
            summary=_clean_text(_match(_SUMMARY_PATTERN, entry_xml)),
            authors=[name.strip() for name in _AUTHOR_PATTERN.findall(entry_xml)],
            published=_match(_PUBLISHED_PATTERN, entry_xml),
            updated=_match(_UPDATED_PATTERN, entry_xml),
            links=links,
            categories=_CATEGORY_PATTERN.findall(entry_xml),
            primary_category=_match(_PRIMARY_CATEGORY_PATTERN, entry_xml),
            pdf_url=pdf_link or f"https://arxiv.org/pdf/{base_id}.pdf",
            html_url=f"{ar5iv_base}/abs/{base_id}",
        ))
    
    return entries


def html_to_text(page: str) -> str:
    """Reduce an ar5iv HTML page to readable plain text."""
    content = page
    for tag in _REMOVED_BLOCKS:
        content = re.sub(rf'<{tag}[\s\S]*?</{tag}>', '', content, flags=re.IGNORECASE)
    
    # Prefer the article, then main, then body
    for tag in ("article", "main", "body"):
        match = re.search(rf'<{tag}[^>]*>([\s\S]*?)</{tag}>', content, flags=re.IGNORECASE)
        if match:
            content = match.group(1)
            break
    
    content = re.sub(r'</p>', '\n\n', content, flags=re.IGNORECASE)
    content = re.sub(r'<br\s*/?>', '\n', content, flags=re.IGNORECASE)
    content = re.sub(r'</h[1-6]>', '\n\n', content, flags=re.IGNORECASE)
    content = re.sub(r'<h[1-6][^>]*>', '\n\n### ', content, flags=re.IGNORECASE)
    content = re.sub(r'<[^>]+>', '', content)
    content = html.unescape(content).replace('\xa0', ' ')
    content = re.sub(r'\n{3,}', '\n\n', content)
    
    return content.strip()


class ArxivTool:
    """In-process tool provider for arXiv.
    
    Registered under the synthetic server id ``arxiv``. Every failure is
    reported as an error result; ``call_tool`` does not raise.
    """
    
    server_id = ARXIV_SERVER_ID
    
    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None
    ):
        settings = settings or get_settings()
        self._http_client = http_client
        self.api_base = settings.arxiv_api_base
        self.ar5iv_base = settings.ar5iv_base.rstrip("/")
        self.timeout = settings.arxiv_timeout
        self.content_limit = settings.arxiv_content_limit
        self.user_agent = settings.arxiv_user_agent
    
    def get_tools(self) -> List[ToolDescriptor]:
        return list(ARXIV_TOOLS)
    
    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> str:
        headers = {"User-Agent": self.user_agent, **(headers or {})}
        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url, params=params, headers=headers)
            else:
                response = await self._http_client.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self.timeout,
                    follow_redirects=True,
                )
        except httpx.RequestError as e:
            raise TransportError(0, str(e) or type(e).__name__, url) from e
        
        if not response.is_success:
            raise TransportError(response.status_code, response.reason_phrase, url)
        return response.text
    
    async def search(
        self,
        query: str,
        max_results: int = 5,
        sort_by: str = "relevance",
        sort_order: str = "descending"
    ) -> List[ArxivEntry]:
        """Query the arXiv API across all fields."""
        params = {
            "search_query": f"all:{query}",
            "start": "0",
            "max_results": str(clamp_max_results(max_results)),
            "sortBy": sort_by,
            "sortOrder": sort_order,
        }
        logger.info(f"arXiv search: {query[:100]}")
        xml = await self._get(self.api_base, params=params)
        return parse_arxiv_feed(xml, self.ar5iv_base)
    
    async def get_paper(self, url_or_id: str) -> Optional[ArxivEntry]:
        """Fetch the metadata of exactly one paper."""
        arxiv_id = parse_arxiv_id(url_or_id)
        xml = await self._get(self.api_base, params={"id_list": arxiv_id})
        entries = parse_arxiv_feed(xml, self.ar5iv_base)
        return entries[0] if entries else None
    
    async def fetch_html_content(self, url_or_id: str) -> str:
        """Fetch the ar5iv rendering of a paper as plain text."""
        arxiv_id = parse_arxiv_id(url_or_id)
        page = await self._get(
            f"{self.ar5iv_base}/abs/{arxiv_id}",
            headers={"Accept": "text/html"},
        )
        return html_to_text(page)
    
    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolCallResult:
        """Run one of the arXiv tools."""
        arguments = arguments or {}
        try:
            if name == "arxiv_search":
                return await self._call_search(arguments)
            if name == "arxiv_fetch":
                return await self._call_fetch(arguments)
            return ToolCallResult.from_text(f"Unknown tool: {name}", is_error=True)
        except Exception as e:
            logger.error(f"arXiv tool '{name}' failed: {e}", exc_info=True)
            return ToolCallResult.from_text(f"arXiv tool call failed: {e}", is_error=True)
    
    async def _call_search(self, arguments: Dict[str, Any]) -> ToolCallResult:
        query = str(arguments.get("query") or "").strip()
        if not query:
            return ToolCallResult.from_text("Error: a search query is required", is_error=True)
        
        entries = await self.search(
            query,
            max_results=clamp_max_results(arguments.get("maxResults")),
            sort_by=normalize_choice(arguments.get("sortBy"), SORT_BY_VALUES, "relevance"),
            sort_order=normalize_choice(arguments.get("sortOrder"), SORT_ORDER_VALUES, "descending"),
        )
        if not entries:
            return ToolCallResult.from_text(format_no_results(query))
        return ToolCallResult.from_text(format_search_results(query, entries))
    
    async def _call_fetch(self, arguments: Dict[str, Any]) -> ToolCallResult:
        url = str(arguments.get("url") or "").strip()
        if not url:
            return ToolCallResult.from_text("Error: an arXiv URL or paper id is required", is_error=True)
        
        paper = await self.get_paper(url)
        if paper is None:
            return ToolCallResult.from_text(
                f"Paper not found: {url}. Check the arXiv id or URL.",
                is_error=True,
            )
        
        content = None
        content_error = None
        if arguments.get("includeContent") is not False:
            try:
                content = await self.fetch_html_content(url)
                if content:
                    content = truncate_content(content, self.content_limit)
            except Exception as e:
                logger.warning(f"ar5iv content fetch failed for '{url}': {e}")
                content_error = str(e)
        
        return ToolCallResult.from_text(format_paper_details(paper, content, content_error))
