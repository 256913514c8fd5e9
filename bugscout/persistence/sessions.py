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

"""File-backed session checkpoints."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional

from bugscout.exceptions import SessionStateError
from bugscout.exploration.session import ExplorationSession
from bugscout.utils.logger import logger


class JsonSessionStore:
    """
    ``SessionStore`` keeping one JSON file per session.

    Files are written to a temporary name and renamed into place so an
    interrupted checkpoint never leaves a truncated file behind.
    """

    def __init__(self, base_dir: str) -> None:
        self.base_dir = Path(base_dir)

    def _path(self, session_id: str) -> Path:
        return self.base_dir / f"{session_id}.json"

    async def save(self, session: ExplorationSession) -> None:
        path = self._path(session.id)
        data = json.dumps(session.to_dict(), indent=2, default=str)
        await asyncio.to_thread(self._write, path, data)
        logger.debug(f"[SessionStore] Checkpointed session {session.id} at step {session.current_step}")

    @staticmethod
    def _write(path: Path, data: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(data, encoding="utf-8")
        os.replace(tmp, path)

    async def load(self, session_id: str) -> Optional[ExplorationSession]:
        """
        Returns:
            The stored session, or None if there is no checkpoint

        Raises:
            SessionStateError: If the checkpoint exists but cannot be parsed
        """
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            data = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return ExplorationSession.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError) as e:
            raise SessionStateError(f"Corrupt checkpoint for session {session_id}: {e}") from e

    def list_sessions(self) -> List[str]:
        """Stored session ids, most recently written first."""
        if not self.base_dir.exists():
            return []
        files = sorted(self.base_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [path.stem for path in files]

    async def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True
