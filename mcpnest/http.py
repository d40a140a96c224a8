"""HTTP client for the MCPNest config page."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import aiohttp

from .errors import MCPNestNetworkError, MCPNestTimeout
from .protocol import CONFIG_PATH, DEFAULT_HOST, PAGE_ACCEPT, USER_AGENT

_LOGGER = logging.getLogger(__name__)

_CSRF_RE = re.compile(r'name="csrf-token"\s+content="([^"]+)"')
_SESSION_RE = re.compile(r'data-phx-session="([^"]+)"')
_STATIC_RE = re.compile(r'data-phx-static="([^"]+)"')
_ELEMENT_ID_RE = re.compile(r'id="([^"]*phx-[^"]+)"')


@dataclass(frozen=True, slots=True)
class PageTokens:
    """Tokens scraped from the server-rendered config page."""

    csrf_token: str | None = None
    session: str | None = None
    static: str | None = None
    element_id: str | None = None


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_page_tokens(html: str) -> PageTokens:
    """Extract the four LiveView tokens from page HTML.

    Each token is matched independently; a missing one is ``None``.
    """
    tokens = PageTokens(
        csrf_token=_first_group(_CSRF_RE, html),
        session=_first_group(_SESSION_RE, html),
        static=_first_group(_STATIC_RE, html),
        element_id=_first_group(_ELEMENT_ID_RE, html),
    )
    _LOGGER.debug(
        "Page tokens: csrf=%s session=%s static=%s element_id=%s",
        tokens.csrf_token is not None,
        tokens.session is not None,
        tokens.static is not None,
        tokens.element_id,
    )
    return tokens


class MCPNestHttpClient:
    """HTTP client wrapper for the MCPNest config page."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        host: str = DEFAULT_HOST,
        *,
        request_timeout: float = 10.0,
    ) -> None:
        self._session = session
        self._host = host
        self._request_timeout = request_timeout

    def _url(self, path: str) -> str:
        return f"https://{self._host}{path}"

    async def fetch_page_tokens(self, cookie: str) -> PageTokens:
        """Fetch the config page with the given cookie and scrape its tokens.

        A redirect means the page was not served to an authenticated user:
        it yields empty tokens rather than an error, and the caller decides
        what is missing.
        """
        url = self._url(CONFIG_PATH)
        headers = {
            "Cookie": cookie,
            "User-Agent": USER_AGENT,
            "Accept": PAGE_ACCEPT,
        }
        try:
            async with self._session.get(
                url,
                headers=headers,
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as resp:
                _LOGGER.debug("Config page status: %s", resp.status)
                if 300 <= resp.status < 400:
                    _LOGGER.warning(
                        "Redirect detected - authentication may have expired"
                    )
                    return PageTokens()
                body = await resp.text()
        except TimeoutError as err:
            raise MCPNestTimeout("Config page request timed out") from err
        except aiohttp.ClientError as err:
            raise MCPNestNetworkError("Failed to fetch config page") from err

        _LOGGER.debug("Config page length: %d", len(body))
        _LOGGER.debug("Config page head: %s", body[:500])
        tokens = parse_page_tokens(body)
        if tokens.csrf_token is None:
            _LOGGER.debug("No CSRF token found on config page")
        return tokens
