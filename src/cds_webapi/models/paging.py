# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
FetchXML paging cookie codec.

FetchXML queries return a ``@Microsoft.Dynamics.CRM.fetchxmlpagingcookie``
annotation: a twice URL-encoded ``<cookie page="N">...</cookie>`` fragment
wrapped in a ``pagingcookie`` attribute. The next request passes the cookie
back, XML-escaped, as the ``paging-cookie`` attribute of the ``<fetch>`` root.

The server omits or empties the cookie for some aggregate and grouped
queries. Decoding never fails because of that: the last known page number is
substituted and ``has_more_records`` from the response decides when to stop.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote
from xml.sax.saxutils import escape, unescape

_PAGING_COOKIE_RE = re.compile(r'pagingcookie="(<cookie page="(\d+)".*</cookie>)"', re.DOTALL)

# Attribute-value escapes for embedding the cookie inside paging-cookie="..."
_ATTRIBUTE_ENTITIES = {'"': "&quot;"}


@dataclass(frozen=True)
class PagingCookie:
    """
    Decoded paging state for the next FetchXML request.

    :param cookie: Cookie ready to embed as the ``paging-cookie`` attribute
        (XML-escaped); empty when the server sent none.
    :param page_number: Page the cookie belongs to (starts at 1).
    :param next_page_number: Page to request next (``page_number + 1``).
    """

    cookie: str
    page_number: int
    next_page_number: int

    @property
    def is_empty(self) -> bool:
        return not self.cookie


def decode_paging_cookie(cookie_text: Optional[str], current_page_number: int = 1) -> PagingCookie:
    """
    Decode a paging cookie annotation.

    :param cookie_text: Raw annotation value (may be ``None`` or empty).
    :param current_page_number: Page number of the response the annotation came from.
        Used as the fallback when the cookie carries no page indicator.
    :return: Decoded cookie. Never raises for a missing or malformed cookie.
    """
    current = current_page_number if isinstance(current_page_number, int) and current_page_number > 0 else 1
    text = unquote(unquote(cookie_text or ""))
    m = _PAGING_COOKIE_RE.search(text)
    if m is None:
        return PagingCookie(cookie="", page_number=current, next_page_number=current + 1)
    page = int(m.group(2))
    if page < 1:
        return PagingCookie(cookie="", page_number=current, next_page_number=current + 1)
    cookie = escape(unescape(m.group(1)), _ATTRIBUTE_ENTITIES)
    return PagingCookie(cookie=cookie, page_number=page, next_page_number=page + 1)


def encode_paging_cookie(page_number: int, cookie_body: str = "") -> str:
    """
    Render a paging cookie annotation the way the server issues it.

    :param page_number: Page number to stamp on the ``<cookie>`` element.
    :param cookie_body: Inner XML of the cookie (e.g. ``<accountid last="..." />``).
    """
    inner = f'<cookie page="{int(page_number)}">{cookie_body}</cookie>'
    fragment = f'<cookie pagenumber="{int(page_number) + 1}" pagingcookie="{quote(quote(inner, safe=""), safe="")}" istracking="False" />'
    return fragment


__all__ = ["PagingCookie", "decode_paging_cookie", "encode_paging_cookie"]
