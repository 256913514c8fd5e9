# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Page and URL helpers shared by the exploration loop."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

# href schemes that never lead to another page
_NON_NAVIGABLE_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "#")


def is_blank_page(url: str) -> bool:
    """Check whether a URL is an empty or ``about:`` page.

    Examples:
        >>> is_blank_page("about:blank")
        True
        >>> is_blank_page("https://example.com")
        False
    """
    if not url:
        return True
    return url.strip().lower().startswith("about:")


def normalize_url(url: str) -> str:
    """Normalize a URL for equivalence checks.

    Case and a single trailing slash are ignored, fragments are dropped.

    Examples:
        >>> normalize_url("https://Example.com/Shop/")
        'https://example.com/shop'
    """
    if not url:
        return ""
    without_fragment, _ = urldefrag(url.strip())
    normalized = without_fragment.lower()
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def urls_equivalent(first: str, second: str) -> bool:
    """Return True when two URLs point at the same page."""
    return normalize_url(first) == normalize_url(second)


def is_navigable_href(href: Optional[str]) -> bool:
    """Return True when an href can be followed to a new page."""
    if not href:
        return False
    return not href.strip().lower().startswith(_NON_NAVIGABLE_PREFIXES)


def resolve_href(base_url: str, href: str) -> str:
    """Resolve ``href`` against ``base_url``, dropping any fragment."""
    resolved, _ = urldefrag(urljoin(base_url, href.strip()))
    return resolved


def same_origin(first: str, second: str) -> bool:
    """Return True when both URLs share scheme and host."""
    a, b = urlparse(first), urlparse(second)
    return (a.scheme.lower(), a.netloc.lower()) == (b.scheme.lower(), b.netloc.lower())
