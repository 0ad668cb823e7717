"""
SearXNG Web Search Tool

Provides web search capabilities via a SearXNG instance.
"""

import logging
from typing import Any, Optional

import requests
from pydantic import BaseModel, Field

from ..errors import InvalidInput, ToolInvocationFailed
from .base import Tool

logger = logging.getLogger(__name__)


def search(
    query: str,
    url: str,
    categories: Optional[str] = None,
    num_results: int = 5,
    timeout: int = 30,
) -> list[dict]:
    """
    Search the web using SearXNG.

    Args:
        query: The search query
        url: SearXNG search endpoint
        categories: Optional category filter (e.g., "general", "news")
        num_results: Maximum number of results to return
        timeout: Request timeout in seconds

    Returns:
        List of results with title, url, content and engine

    Raises:
        InvalidInput: If the query is empty.
        ToolInvocationFailed: If the request fails.
    """
    if not query or not query.strip():
        raise InvalidInput('Search query is empty. Provide a query, e.g. query: "your search terms"')

    params = {
        "q": query,
        "format": "json",
    }
    if categories:
        params["categories"] = categories

    try:
        response = requests.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Search failed: {e}")
        raise ToolInvocationFailed(f"Search failed: {e}") from e
    except ValueError as e:
        logger.error(f"Search returned invalid JSON: {e}")
        raise ToolInvocationFailed("Search backend returned an invalid response") from e

    results = []
    for result in data.get("results", [])[:num_results]:
        results.append({
            "title": result.get("title", ""),
            "url": result.get("url", ""),
            "content": result.get("content", ""),
            "engine": result.get("engine", ""),
        })
    return results


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    content: str = ""
    engine: str = ""


class WebSearchInput(BaseModel):
    query: str = Field(description="The search terms. MANDATORY")
    categories: Optional[str] = Field(
        default=None, description="Optional category filter, e.g. general or news."
    )
    num_results: int = Field(
        default=5, ge=1, le=20, description="Maximum number of results (1-20). Default 5."
    )


class WebSearchOutput(BaseModel):
    results: list[SearchResult] = Field(
        description="A list of results with title, url, content and engine."
    )


class WebSearchTool(Tool):
    """Simple tool querying a SearXNG instance."""

    name = "WebSearch"
    purpose = "Search the web and return the top results."
    usage_hint = "Use this to find recent facts or sources. Results are short snippets, follow up with a narrower query if needed."
    input_model = WebSearchInput
    output_model = WebSearchOutput

    def __init__(self, url: str = "http://localhost:8080/search", timeout: int = 30):
        self.url = url
        self.timeout = timeout

    def invoke(self, input: Any) -> dict:
        data = self.parse_input(input)
        results = search(
            data.query,
            url=self.url,
            categories=data.categories,
            num_results=data.num_results,
            timeout=self.timeout,
        )
        return self.dump_output(WebSearchOutput(results=[SearchResult(**r) for r in results]))
