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

"""
URL discovery: collects links seen during exploration and ranks the unvisited ones.

Links are categorized by URL and link text; lower scores are explored first.
The ranked list feeds navigation hints for the advisor and the page the
explorer moves to when a page budget is exhausted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from bugscout.exploration.types import PageObservation
from bugscout.utils.logger import logger
from bugscout.utils.page_utils import is_navigable_href, normalize_url, resolve_href, same_origin


class URLCategory(str, Enum):
    """Coarse page categories, in exploration priority order."""

    AUTH = "auth"
    PRODUCT = "product"
    CART = "cart"
    USER = "user"
    INFO = "info"
    OTHER = "other"


DEFAULT_PRIORITY = 50

# (keywords, category, score); first match wins
_PRIORITY_RULES: Tuple[Tuple[Tuple[str, ...], URLCategory, int], ...] = (
    (("signup", "sign-up", "register", "join"), URLCategory.AUTH, 5),
    (("login", "signin", "sign-in", "auth"), URLCategory.AUTH, 15),
    (("cart", "basket", "checkout"), URLCategory.CART, 25),
    (("product", "item", "shop", "catalog", "category"), URLCategory.PRODUCT, 35),
    (("account", "profile", "settings", "orders"), URLCategory.USER, 40),
    (("search",), URLCategory.OTHER, 45),
    (("about", "contact", "help", "faq"), URLCategory.INFO, 65),
    (("terms", "privacy", "legal", "cookie"), URLCategory.INFO, 80),
    (("blog", "news", "press"), URLCategory.INFO, 85),
)


@dataclass
class DiscoveredURL:
    """A link found on an explored page."""

    url: str
    link_text: str
    category: URLCategory
    priority: int
    discovered_from: str
    order: int
    visited: bool = False


def categorize(url: str, link_text: str = "") -> Tuple[URLCategory, int]:
    """Return the category and priority score for a link."""
    # Host names are ignored; "shop.example.com" says nothing about a page
    parsed = urlparse(url)
    haystack = f"{parsed.path} {parsed.query} {link_text}".lower()
    for keywords, category, score in _PRIORITY_RULES:
        if any(keyword in haystack for keyword in keywords):
            return category, score
    return URLCategory.OTHER, DEFAULT_PRIORITY


class URLDiscovery:
    """
    Tracks discovered and visited URLs.

    Args:
        origin_url: Links outside this URL's origin are ignored when ``same_origin_only``
        same_origin_only: Restrict discovery to the starting site
        max_urls: Cap on the number of tracked URLs
    """

    def __init__(self, origin_url: str = "", same_origin_only: bool = True, max_urls: int = 500) -> None:
        self.origin_url = origin_url
        self.same_origin_only = same_origin_only
        self.max_urls = max_urls
        self._urls: Dict[str, DiscoveredURL] = {}
        self._visited: set = set()
        self._counter = 0

    def set_origin(self, url: str) -> None:
        if not self.origin_url:
            self.origin_url = url

    def add_from_observation(self, observation: PageObservation) -> int:
        """Register links from ``observation``; returns how many were new."""
        self.set_origin(observation.url)
        added = 0
        for element in observation.elements:
            if not is_navigable_href(element.href):
                continue
            if self.add(resolve_href(observation.url, element.href), element.text, observation.url):
                added += 1
        if added:
            logger.debug(f"[URLDiscovery] {added} new links from {observation.url}")
        return added

    def add(self, url: str, link_text: str = "", discovered_from: str = "") -> bool:
        key = normalize_url(url)
        if not key or key in self._urls or len(self._urls) >= self.max_urls:
            return False
        if self.same_origin_only and self.origin_url and not same_origin(url, self.origin_url):
            return False

        category, priority = categorize(url, link_text)
        self._counter += 1
        self._urls[key] = DiscoveredURL(
            url=url,
            link_text=link_text.strip()[:80],
            category=category,
            priority=priority,
            discovered_from=discovered_from,
            order=self._counter,
            visited=key in self._visited,
        )
        return True

    def mark_visited(self, url: str) -> None:
        key = normalize_url(url)
        self._visited.add(key)
        if key in self._urls:
            self._urls[key].visited = True

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    def unvisited(self, limit: Optional[int] = None) -> List[DiscoveredURL]:
        """Unvisited URLs, best first (lowest score, then discovery order)."""
        ranked = sorted(
            (entry for entry in self._urls.values() if not entry.visited),
            key=lambda entry: (entry.priority, entry.order),
        )
        return ranked[:limit] if limit is not None else ranked

    def next_target(self) -> Optional[DiscoveredURL]:
        candidates = self.unvisited(limit=1)
        return candidates[0] if candidates else None

    def navigation_hints(self, limit: int = 5) -> List[str]:
        hints = []
        for entry in self.unvisited(limit=limit):
            label = f" ({entry.link_text})" if entry.link_text else ""
            hints.append(f"{entry.url}{label} [{entry.category.value}]")
        return hints

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def clear(self) -> None:
        self._urls.clear()
        self._visited.clear()
        self._counter = 0
