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
File-backed finding sink.

Findings are stored one JSON file per finding under
``<base_dir>/<session_id>/``. Duplicate detection is in memory and matches
on either an exact key (normalized title plus page path pattern) or keyword
overlap between titles reported on the same page pattern.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional
from urllib.parse import urlparse

from bugscout.exceptions import FindingSinkError
from bugscout.exploration.types import Finding
from bugscout.utils.logger import logger

DEFAULT_SIMILARITY_THRESHOLD = 0.6

_STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from", "has",
    "have", "in", "is", "it", "its", "not", "of", "on", "or", "page", "that",
    "the", "this", "to", "was", "were", "when", "with",
})
_ID_SEGMENT = re.compile(r"/(\d+|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})(?=/|$)", re.I)


def normalize_title(title: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9 ]+", " ", title.lower()).split())


def page_pattern(url: str) -> str:
    """Host and path with numeric and UUID segments collapsed."""
    parsed = urlparse(url)
    path = _ID_SEGMENT.sub("/:id", parsed.path.rstrip("/")) or "/"
    return f"{parsed.netloc.lower()}{path}"


def keywords(text: str) -> FrozenSet[str]:
    return frozenset(word for word in normalize_title(text).split() if len(word) > 2 and word not in _STOP_WORDS)


@dataclass
class _Registered:
    finding_id: str
    key: str
    pattern: str
    keywords: FrozenSet[str]


class JsonFindingStore:
    """
    ``FindingSink`` writing findings as JSON files.

    Example:
        >>> store = JsonFindingStore(".bugscout/findings", session_id=session.id)
        >>> if not await store.is_duplicate(finding.title, finding.page_url):
        ...     await store.save(finding)
        ...     await store.register(finding)
    """

    def __init__(
        self,
        base_dir: str,
        session_id: str = "default",
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.session_id = session_id
        self.similarity_threshold = similarity_threshold
        self._registered: List[_Registered] = []
        self._by_key: Dict[str, str] = {}

    @property
    def session_dir(self) -> Path:
        return self.base_dir / self.session_id

    def _signature(self, title: str, page_url: str) -> _Registered:
        pattern = page_pattern(page_url)
        return _Registered(
            finding_id="",
            key=f"{pattern}|{normalize_title(title)}",
            pattern=pattern,
            keywords=keywords(title),
        )

    async def is_duplicate(self, title: str, page_url: str) -> Optional[str]:
        """Return the id of a matching registered finding, or None."""
        candidate = self._signature(title, page_url)
        existing = self._by_key.get(candidate.key)
        if existing:
            return existing

        if not candidate.keywords:
            return None
        for registered in self._registered:
            if registered.pattern != candidate.pattern or not registered.keywords:
                continue
            overlap = len(candidate.keywords & registered.keywords)
            union = len(candidate.keywords | registered.keywords)
            if overlap / union >= self.similarity_threshold:
                return registered.finding_id
        return None

    async def register(self, finding: Finding) -> None:
        signature = self._signature(finding.title, finding.page_url)
        signature.finding_id = finding.id
        self._registered.append(signature)
        self._by_key.setdefault(signature.key, finding.id)

    async def save(self, finding: Finding) -> None:
        """
        Raises:
            FindingSinkError: If the file cannot be written
        """
        path = self.session_dir / f"{finding.id}.json"
        data = json.dumps(finding.to_dict(), indent=2, default=str)
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, data, encoding="utf-8")
        except OSError as e:
            raise FindingSinkError(f"Failed to save finding {finding.id}: {e}") from e
        logger.debug(f"[FindingStore] Saved {path}")

    async def load_all(self) -> List[Finding]:
        """Findings saved for this session, oldest first."""
        if not self.session_dir.exists():
            return []
        findings = []
        for path in sorted(self.session_dir.glob("*.json")):
            try:
                data = await asyncio.to_thread(path.read_text, encoding="utf-8")
                findings.append(Finding.from_dict(json.loads(data)))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"[FindingStore] Skipping unreadable finding {path}: {e}")
        findings.sort(key=lambda finding: finding.created_at)
        return findings

    def clear(self) -> None:
        """Forget registered findings; files on disk are kept."""
        self._registered.clear()
        self._by_key.clear()

    def __len__(self) -> int:
        return len(self._registered)


class InMemoryFindingStore(JsonFindingStore):
    """Same duplicate rules, nothing written to disk."""

    def __init__(self, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> None:
        super().__init__(base_dir="", similarity_threshold=similarity_threshold)
        self.saved: List[Finding] = []

    async def save(self, finding: Finding) -> None:
        self.saved.append(finding)

    async def load_all(self) -> List[Finding]:
        return list(self.saved)
