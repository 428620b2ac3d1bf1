import ipaddress
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from errors import ValidationError

MAX_URL_LENGTH = 2048
MAX_TITLE_LENGTH = 255
MAX_MEMO_LENGTH = 1000

RECIPE_ID_MIN_LENGTH = 10
RECIPE_ID_MAX_LENGTH = 50

# ホスト名に使えない文字 (WHATWG URL の forbidden host code points)
FORBIDDEN_HOST_CHARS = frozenset("\x00\t\n\r #/:<>?@[\\]^|%")


def is_valid_url(s: Any) -> bool:
    if not isinstance(s, str) or not s.strip():
        return False
    try:
        p = urlparse(s.strip())
        if p.scheme not in ("http", "https"):
            return False
        # "http://host:99999" のような不正なポートは .port が ValueError を投げる
        if p.port is not None and p.port < 0:
            return False
        return _is_valid_host(p.hostname, bracketed="[" in p.netloc)
    except ValueError:
        return False


def _is_valid_host(host: Optional[str], bracketed: bool = False) -> bool:
    if not host:
        return False
    if bracketed:
        ipaddress.IPv6Address(host)
        return True
    return not any(
        c in FORBIDDEN_HOST_CHARS or ord(c) < 0x20 or ord(c) == 0x7F or c.isspace()
        for c in host
    )


def extract_domain(s: Any) -> Optional[str]:
    if not is_valid_url(s):
        return None
    return urlparse(s.strip()).hostname


def normalize_text(s: Optional[str]) -> Optional[str]:
    """Trim a user-supplied string; blank becomes None."""
    if s is None:
        return None
    s = s.strip()
    return s or None


def sanitize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: normalize_text(v) if isinstance(v, str) else v for k, v in data.items()
    }


def validate_url(url: Optional[str]) -> str:
    if not url:
        raise ValidationError("Recipe URL is required")
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(
            f"URL is too long. Maximum length is {MAX_URL_LENGTH} characters"
        )
    if not is_valid_url(url):
        raise ValidationError(
            "Invalid URL format. Please provide a valid HTTP or HTTPS URL"
        )
    return url


def validate_image_url(image_url: Optional[str]) -> Optional[str]:
    if not image_url:
        return None
    if len(image_url) > MAX_URL_LENGTH:
        raise ValidationError(
            f"Image URL is too long. Maximum length is {MAX_URL_LENGTH} characters"
        )
    if not is_valid_url(image_url):
        raise ValidationError("Invalid image URL format")
    return image_url


def validate_title(title: Optional[str]) -> Optional[str]:
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title is too long. Maximum length is {MAX_TITLE_LENGTH} characters"
        )
    return title


def validate_memo(memo: Optional[str]) -> Optional[str]:
    if memo and len(memo) > MAX_MEMO_LENGTH:
        raise ValidationError(
            f"Memo is too long. Maximum length is {MAX_MEMO_LENGTH} characters"
        )
    return memo


def validate_recipe_id(recipe_id: Optional[str]) -> str:
    if not recipe_id:
        raise ValidationError("Recipe ID is required")
    if not RECIPE_ID_MIN_LENGTH <= len(recipe_id) <= RECIPE_ID_MAX_LENGTH:
        raise ValidationError("Invalid recipe ID format")
    return recipe_id
