"""
Fetches the HTML title of a page so queued jobs have a readable name.

Title fetching is best effort: every failure yields None and is only logged
at debug level.
"""

import asyncio
import logging
import re

import aiohttp
from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

# URLs pointing straight at files are not worth a request
_FILE_EXTENSIONS = (
    ".zip",
    ".mp4",
    ".mp3",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".pdf",
    ".exe",
    ".dmg",
)
_MAX_BODY_SIZE = 1024 * 1024  # 1 MB
_USER_AGENT = "dlm/1.0 (Download Manager)"
_WHITESPACE_REGEX = re.compile(r"\s+")


def extract_title(html: str) -> str | None:
    """Returns the whitespace-normalized <title> text of a document, if any."""
    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None or soup.title.string is None:
        return None
    title = _WHITESPACE_REGEX.sub(" ", soup.title.string).strip()
    return title or None


def is_file_url(url: str) -> bool:
    return url.lower().split("?", 1)[0].endswith(_FILE_EXTENSIONS)


async def fetch_page_title(url: str, timeout_s: float = 10) -> str | None:
    """
    Fetches a URL and extracts its page title.

    Only text/html responses are parsed and at most 1 MB of the body is read.
    The whole request is bounded by `timeout_s`.
    """
    if is_file_url(url):
        return None

    timeout = aiohttp.ClientTimeout(total=timeout_s)
    try:
        async with (
            aiohttp.ClientSession(
                timeout=timeout, headers={"User-Agent": _USER_AGENT}
            ) as session,
            session.get(url) as response,
        ):
            if response.status >= 400:
                log.debug(f"Title fetch for {url} returned HTTP {response.status}")
                return None
            if "text/html" not in response.headers.get("Content-Type", "").lower():
                return None
            body = b""
            async for chunk in response.content.iter_chunked(64 * 1024):
                body += chunk
                if len(body) >= _MAX_BODY_SIZE:
                    break
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        log.debug(f"Could not fetch title for {url}: {e}")
        return None

    return extract_title(body.decode("utf-8", errors="replace"))
