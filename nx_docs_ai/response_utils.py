"""
Response post-processing helpers.

- Pull the assistant text out of a chat-completion response
- Make every markdown link in the answer point at the docs site
- Turn the matched page sections into a deduplicated source list
"""

import logging
import re
from typing import Any, Dict, Iterable, List
from urllib.parse import urlsplit, urlunsplit

from nx_docs_ai.errors import ApplicationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://nx.dev"

# [text](target "optional title")
_MARKDOWN_LINK = re.compile(r'\[([^\]]*)\]\(\s*([^)\s]*)(\s+"[^"]*")?\s*\)')
_CODE_FENCE = re.compile(r"(```.*?```)", re.DOTALL)
_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_UNTOUCHED_PREFIXES = ("#", "mailto:", "tel:")


def get_message_from_response(response: Any) -> str:
    """
    Extract the assistant text from a chat-completion response.

    Raises:
        ApplicationError: If the response does not have the expected shape
    """
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError) as e:
        raise ApplicationError("Unexpected completion response shape", repr(response)) from e

    if content is None:
        raise ApplicationError("Completion response has no message content", repr(response))
    return content


def _collapse_slashes(path: str) -> str:
    return re.sub(r"/{2,}", "/", path)


def to_absolute_url(target: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """
    Resolve a link target against the docs site.

    Root-relative and bare relative paths are prefixed with ``base_url``;
    repeated copies of the base url and doubled slashes are removed.
    Links to other hosts come back unchanged.
    """
    base_url = base_url.rstrip("/")
    base = urlsplit(base_url)

    # "https://nx.dev/https://nx.dev/..." and "/https://nx.dev/...", prefix only
    repeated = re.match(rf"^(?:/*{re.escape(base_url)})+", target)
    if repeated:
        target = base_url + target[repeated.end():]

    if target.startswith("//"):
        target = f"{base.scheme}:{target}"

    if _SCHEME.match(target):
        parts = urlsplit(target)
        if parts.netloc != base.netloc:
            return target
        return urlunsplit(parts._replace(path=_collapse_slashes(parts.path)))

    path = target
    while path.startswith(("./", "../")):
        path = path.split("/", 1)[1]
    if not path.startswith("/"):
        path = f"/{path}"

    parts = urlsplit(path)
    return base_url + urlunsplit(("", "", _collapse_slashes(parts.path), parts.query, parts.fragment))


def _rewrite_link(match: "re.Match[str]", base_url: str) -> str:
    text, target, title = match.group(1), match.group(2), match.group(3) or ""

    if not target:
        return text
    if target.startswith(_UNTOUCHED_PREFIXES):
        return match.group(0)

    return f"[{text}]({to_absolute_url(target, base_url)}{title})"


def sanitize_links_in_response(text: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """
    Rewrite the markdown links of an answer to absolute docs-site links.

    Fenced code blocks are left untouched.

    Args:
        text: Assistant answer (markdown)
        base_url: Docs site root

    Returns:
        The answer with sanitized links
    """
    segments = _CODE_FENCE.split(text)
    for i in range(0, len(segments), 2):
        segments[i] = _MARKDOWN_LINK.sub(lambda m: _rewrite_link(m, base_url), segments[i])
    return "".join(segments)


def get_list_of_sources(
    sections: Iterable[Any],
    base_url: str = DEFAULT_BASE_URL,
) -> List[Dict[str, str]]:
    """
    Build the heading/url source list for an answer.

    Sections missing a heading or url are skipped; duplicates (same absolute
    url) keep their first, best ranked, occurrence.

    Args:
        sections: PageSection-like objects with ``heading`` and ``url``
        base_url: Docs site root

    Returns:
        List of {"heading", "url"} dicts
    """
    sources = []
    seen = set()

    for section in sections:
        heading = (section.heading or "").strip()
        if not heading or not section.url:
            continue

        url = to_absolute_url(section.url, base_url)
        if url in seen:
            continue
        seen.add(url)
        sources.append({"heading": heading, "url": url})

    return sources


def to_markdown_list(sources: Iterable[Dict[str, str]]) -> str:
    """Render sources as a markdown bullet list."""
    return "\n".join(f"- [{s['heading']}]({s['url']})" for s in sources)
