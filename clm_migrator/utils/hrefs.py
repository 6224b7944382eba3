"""Decoding of Href resource references into opaque identifiers."""
from urllib.parse import unquote, urlsplit

from ..errors import InvalidResourceReference


def href_to_id(href: str) -> str:
    """
    Return the trailing path segment of a resource reference.

    Query strings, fragments and trailing slashes are ignored:
        >>> href_to_id("https://api.example.com/v2/1/folders/abc123/?x=1")
        'abc123'
    """
    if not href or not isinstance(href, str):
        raise InvalidResourceReference(f"Empty resource reference: {href!r}")

    path = urlsplit(href.strip()).path.rstrip("/")
    segment = path.rsplit("/", 1)[-1] if path else ""
    if not segment:
        raise InvalidResourceReference(f"Resource reference has no identifier: {href!r}")
    return unquote(segment)


def href_from_response(response) -> str:
    """Extract the identifier from a JSON body shaped like {"Href": "..."}."""
    payload = response.json()
    href = payload.get("Href") if isinstance(payload, dict) else None
    return href_to_id(href)
