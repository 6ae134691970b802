# app/utils/urls.py
from urllib.parse import urlencode, urlsplit

from app.utils.settings import PUBLIC_BASE_URL

ROOT_URL = "/"


def append_query_param(url: str, name: str, value: str) -> str:
    """Dokleja parametr z '&' jesli url ma juz query string, inaczej z '?'. Fragment zostaje na koncu."""
    base, hash_sign, fragment = url.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({name: value})}{hash_sign}{fragment}"


def is_safe_return_url(url: str | None, public_base_url: str | None = None) -> bool:
    """Tylko sciezki wzgledne albo absolutne url na wlasny origin."""
    if not url:
        return False
    if url.startswith("/"):
        return not url.startswith("//") and "\\" not in url

    base = urlsplit(public_base_url or PUBLIC_BASE_URL)
    target = urlsplit(url)
    return (target.scheme, target.netloc) == (base.scheme, base.netloc)


def return_endpoint_url(endpoint: str, payment_id: str, return_url: str, public_base_url: str | None = None) -> str:
    base = (public_base_url or PUBLIC_BASE_URL).rstrip("/")
    query = urlencode({"payment_id": payment_id, "returnUrl": return_url})
    return f"{base}{endpoint}?{query}"
