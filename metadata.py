import http.client
import logging
import re
import socket
import time
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from errors import (
    FetchTimeoutError,
    HostUnresolvableError,
    NoResponseError,
    RemoteStatusError,
    ValidationError,
)
from validators import MAX_URL_LENGTH, extract_domain, is_valid_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
MAX_REDIRECTS = 5
MAX_BODY_BYTES = 2_000_000
READ_CHUNK_BYTES = 16_384

MAX_TITLE_CHARS = 255
MAX_DESCRIPTION_CHARS = 500

# UA なしだと 403 を返すレシピサイトがある
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# (属性, 値) の優先順。空でない最初のものを使う
TITLE_TAGS: Tuple[Tuple[str, str], ...] = (
    ("property", "og:title"),
    ("name", "twitter:title"),
)
DESCRIPTION_TAGS: Tuple[Tuple[str, str], ...] = (
    ("property", "og:description"),
    ("name", "twitter:description"),
    ("name", "description"),
)
IMAGE_TAGS: Tuple[Tuple[str, str], ...] = (
    ("property", "og:image"),
    ("name", "twitter:image"),
    ("name", "twitter:image:src"),
)


@dataclass
class PageMetadata:
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    domain: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


# =========================
# Parsing
# =========================
def _attr_matcher(value: str) -> Callable[[Optional[str]], bool]:
    return lambda v: bool(v) and v.strip().lower() == value


def _meta_content(soup: BeautifulSoup, candidates: Iterable[Tuple[str, str]]) -> Optional[str]:
    for attr, value in candidates:
        # og:* が name= で、twitter:* が property= で書かれているページもある
        for a in (attr, "name" if attr == "property" else "property"):
            tag = soup.find("meta", attrs={a: _attr_matcher(value)})
            if tag is None:
                continue
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def _clip(s: Optional[str], limit: int, collapse: bool = False) -> Optional[str]:
    if not s:
        return None
    if collapse:
        s = re.sub(r"\s+", " ", s)
    s = s.strip()
    return s[:limit] if s else None


def resolve_image_url(raw: Optional[str], page_url: str) -> Optional[str]:
    """Turn an image reference found on ``page_url`` into an absolute URL.

    Protocol-relative references take the page's scheme, root-relative ones
    the page's origin, anything else is resolved as a relative reference.
    Returns None when the result is not a usable http(s) URL.
    """
    if not raw or not raw.strip():
        return None
    raw = raw.strip()
    try:
        page = urlparse(page_url)
        if raw.startswith("//"):
            resolved = f"{page.scheme}:{raw}"
        elif raw.startswith("/"):
            origin = page.netloc.rsplit("@", 1)[-1]
            resolved = f"{page.scheme}://{origin}{raw}"
        elif urlparse(raw).scheme in ("http", "https"):
            resolved = raw
        else:
            resolved = urljoin(page_url, raw)
    except ValueError:
        return None
    if len(resolved) > MAX_URL_LENGTH or not is_valid_url(resolved):
        return None
    return resolved


def parse_metadata(html, page_url: str, encoding: Optional[str] = None) -> PageMetadata:
    """Extract title/description/image from a page body (str or bytes)."""
    if isinstance(html, bytes):
        soup = BeautifulSoup(html, "html.parser", from_encoding=encoding)
    else:
        soup = BeautifulSoup(html or "", "html.parser")

    title = _meta_content(soup, TITLE_TAGS)
    if not title:
        title_tag = soup.find("title")
        if title_tag is not None:
            title = title_tag.get_text()

    description = _meta_content(soup, DESCRIPTION_TAGS)

    image = _meta_content(soup, IMAGE_TAGS)
    if not image:
        img = soup.find("img", src=lambda v: bool(v and v.strip()))
        if img is not None:
            image = img["src"]

    return PageMetadata(
        title=_clip(title, MAX_TITLE_CHARS, collapse=True),
        description=_clip(description, MAX_DESCRIPTION_CHARS),
        image=resolve_image_url(image, page_url),
        domain=extract_domain(page_url),
    )


# =========================
# Fetching
# =========================
class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    max_redirections = MAX_REDIRECTS


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (socket.timeout, TimeoutError))


def _read_body(res, deadline: float) -> bytes:
    """Read up to MAX_BODY_BYTES, giving up once ``deadline`` has passed."""
    read = getattr(res, "read1", None) or res.read
    chunks = []
    total = 0
    while total < MAX_BODY_BYTES:
        if time.monotonic() >= deadline:
            raise FetchTimeoutError()
        chunk = read(min(READ_CHUNK_BYTES, MAX_BODY_BYTES - total))
        if not chunk:
            break
        chunks.append(chunk)
        total += len(chunk)
    return b"".join(chunks)


class MetadataFetcher:
    """Fetches a page once and extracts its preview metadata.

    Failures are raised as :class:`errors.FetchError` subclasses so callers
    can tell an unresolvable host from a timeout or an error status.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_redirects: int = MAX_REDIRECTS):
        self.timeout = timeout
        handler = _LimitedRedirectHandler()
        handler.max_redirections = max_redirects
        self._opener = urllib.request.build_opener(handler)

    def fetch(self, url: str) -> PageMetadata:
        if not is_valid_url(url):
            raise ValidationError("Invalid URL format")
        url = url.strip()
        body, charset = self._download(url)
        return parse_metadata(body, url, encoding=charset)

    def _download(self, url: str) -> Tuple[bytes, Optional[str]]:
        req = urllib.request.Request(url, headers=BROWSER_HEADERS)
        # timeout= はソケット操作ごとなので、リクエスト全体の締め切りは別に持つ
        deadline = time.monotonic() + self.timeout
        try:
            with self._opener.open(req, timeout=self.timeout) as res:
                body = _read_body(res, deadline)
                return body, res.headers.get_content_charset()
        except urllib.error.HTTPError as e:
            # リダイレクト上限に達しても最後の 3xx はページとして扱う
            if 300 <= e.code < 400:
                if e.fp is None:
                    return b"", None
                try:
                    return _read_body(e, deadline), None
                except OSError:
                    return b"", None
                finally:
                    e.close()
            logger.warning("Metadata fetch for %s returned HTTP %s", url, e.code)
            raise RemoteStatusError(e.code) from e
        except urllib.error.URLError as e:
            reason = e.reason
            if isinstance(reason, socket.gaierror):
                logger.warning("Metadata fetch for %s: host unresolvable", url)
                raise HostUnresolvableError() from e
            if _is_timeout(reason):
                logger.warning("Metadata fetch for %s timed out", url)
                raise FetchTimeoutError() from e
            logger.warning("Metadata fetch for %s failed: %s", url, reason)
            raise NoResponseError() from e
        except (socket.timeout, TimeoutError) as e:
            logger.warning("Metadata fetch for %s timed out while reading", url)
            raise FetchTimeoutError() from e
        except (http.client.HTTPException, OSError) as e:
            # ssl.SSLError や接続リセットなど、本文の読み込み中に起きたものも含む
            logger.warning("Metadata fetch for %s got no usable response: %s", url, e)
            raise NoResponseError() from e


def fetch_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> PageMetadata:
    return MetadataFetcher(timeout=timeout).fetch(url)

