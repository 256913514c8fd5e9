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

"""Broken image detection."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from bugscout.exploration.ports import ToolContext
from bugscout.exploration.types import Finding, Severity, ToolResult
from bugscout.tools.base import BaseTool, ToolMetadata, ToolParameter

_IMAGES_SCRIPT = """
() => Array.from(document.querySelectorAll('img')).map((img, index) => {
    let selector = `img:nth-of-type(${index + 1})`;
    if (img.id) selector = '#' + img.id;
    else if (img.getAttribute('data-testid')) selector = `[data-testid="${img.getAttribute('data-testid')}"]`;
    const rect = img.getBoundingClientRect();
    return {
        src: img.getAttribute('src') || '',
        currentSrc: img.currentSrc || '',
        alt: img.alt || '',
        selector: selector,
        naturalWidth: img.naturalWidth,
        naturalHeight: img.naturalHeight,
        complete: img.complete,
        visible: rect.width > 0 && rect.height > 0,
    };
})
"""

EMPTY_SRC = "empty_src"
INVALID_SRC = "invalid_src"
FAILED_LOAD = "failed_load"

_VALID_PREFIXES = ("http://", "https://", "data:image/", "blob:", "/", "./", "../")


def classify_image(image: Dict[str, Any]) -> Optional[str]:
    """Return why an image is broken, or None if it looks fine."""
    src = (image.get("src") or "").strip()
    if not src:
        return EMPTY_SRC
    if src.lower().startswith("javascript:") or " " in src:
        return INVALID_SRC
    if not src.startswith(_VALID_PREFIXES) and ":" in src.split("/")[0]:
        return INVALID_SRC
    if image.get("complete") and not image.get("naturalWidth") and not image.get("naturalHeight"):
        return FAILED_LOAD
    return None


_REASON_TEXT = {
    EMPTY_SRC: "has no src attribute",
    INVALID_SRC: "has an invalid src",
    FAILED_LOAD: "failed to load (zero natural size)",
}


class BrokenImageDetector(BaseTool):
    """Flags images that are empty, malformed or failed to load."""

    metadata = ToolMetadata(
        name="broken_image_detector",
        description=(
            "Scans the current page for broken images: missing or invalid src "
            "attributes and images that failed to load."
        ),
        parameters=[
            ToolParameter(
                "include_hidden",
                "boolean",
                description="Also report images that are not rendered",
                default=False,
            ),
        ],
    )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        include_hidden = bool(params.get("include_hidden", False))
        images: List[Dict[str, Any]] = await context.browser.evaluate(_IMAGES_SCRIPT) or []

        broken = []
        for image in images:
            if not include_hidden and not image.get("visible", True) and image.get("src"):
                continue
            reason = classify_image(image)
            if reason:
                broken.append({**image, "reason": reason})

        findings = [self._finding(image, context) for image in broken]
        return ToolResult.success_result(
            data={"total_images": len(images), "broken_count": len(broken), "broken_images": broken},
            findings=findings,
        )

    def _finding(self, image: Dict[str, Any], context: ToolContext) -> Finding:
        raw_src = (image.get("src") or "").strip()
        src = raw_src or "(empty)"
        reason = image["reason"]
        label = image.get("alt") or raw_src.rsplit("/", 1)[-1][:60] or image["selector"]
        return Finding.create(
            title=f"Broken image: {label}",
            description=f"Image {image['selector']} ({src}) {_REASON_TEXT[reason]}.",
            page_url=context.page_url,
            severity=Severity.LOW if reason == EMPTY_SRC else Severity.MEDIUM,
            finding_type="broken_image",
            source=self.name,
            evidence={"selector": image["selector"], "src": src, "reason": reason},
        )
