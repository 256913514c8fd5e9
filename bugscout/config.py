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
Configuration for BugScout exploration runs.

Settings are grouped into sub-configurations (loop guard, page budget,
circuit breaker, advisor backends) and can be loaded from YAML or JSON and
overridden through ``BUGSCOUT_<SECTION>_<KEY>`` environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Union

from bugscout.exceptions import ConfigurationError
from bugscout.exploration.types import DEFAULT_OBJECTIVE
from bugscout.llm.config import AdvisorProviderConfig, CircuitBreakerConfig


@dataclass
class LoopGuardConfig:
    """Window sizes and repeat thresholds for loop detection."""

    tool_history_size: int = 10
    tool_loop_threshold: int = 3  # Reject the 3rd identical tool call
    action_history_size: int = 20
    action_loop_threshold: int = 4


@dataclass
class PageBudgetConfig:
    """Limits and completeness criteria for a single page visit."""

    max_time_per_page_seconds: float = 60.0
    max_actions_per_page: int = 8
    exit_after_bugs_found: int = 3
    min_element_interactions: int = 3
    required_tools: List[str] = field(default_factory=lambda: ["broken_image_detector"])


@dataclass
class ExplorationConfig:
    """
    Top-level configuration for an exploration run.

    Aggregates the component configurations plus the session-wide limits,
    observation trimming and persistence locations.
    """

    loop_guard: LoopGuardConfig = field(default_factory=LoopGuardConfig)
    page_budget: PageBudgetConfig = field(default_factory=PageBudgetConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    providers: List[AdvisorProviderConfig] = field(default_factory=list)

    # Session limits
    objective: str = DEFAULT_OBJECTIVE
    max_steps: int = 100
    max_duration_seconds: float = 0.0  # 0 disables the duration ceiling
    checkpoint_interval: int = 10
    progress_interval: int = 5

    # Browser
    headless: bool = True
    action_timeout_seconds: float = 30.0
    observation_timeout_seconds: float = 30.0

    # Observation trimming and prompt context
    max_visible_text: int = 5000
    max_interactive_elements: int = 50
    max_navigation_hints: int = 5
    max_suggestions: int = 5
    max_recent_actions: int = 10

    # Advisor retries at the DECIDE phase (transient failures only)
    decision_retries: int = 2
    decision_retry_delay_seconds: float = 1.0

    # Navigate to the best unvisited URL when a page budget is exhausted
    advance_to_unvisited: bool = True
    generate_summary: bool = True

    # Persistence
    session_dir: str = ".bugscout/sessions"
    findings_dir: str = ".bugscout/findings"

    _SECTIONS = ("loop_guard", "page_budget", "breaker")

    def validate(self) -> None:
        """Raise ConfigurationError for values the exploration loop cannot run with."""
        if self.max_steps < 1:
            raise ConfigurationError("max_steps must be at least 1")
        if self.checkpoint_interval < 1 or self.progress_interval < 1:
            raise ConfigurationError("checkpoint_interval and progress_interval must be at least 1")
        if self.loop_guard.tool_loop_threshold < 2 or self.loop_guard.action_loop_threshold < 2:
            raise ConfigurationError("loop thresholds must be at least 2")
        if self.loop_guard.tool_history_size < self.loop_guard.tool_loop_threshold - 1:
            raise ConfigurationError("tool_history_size is smaller than tool_loop_threshold - 1")
        if self.loop_guard.action_history_size < self.loop_guard.action_loop_threshold - 1:
            raise ConfigurationError("action_history_size is smaller than action_loop_threshold - 1")
        if self.page_budget.max_actions_per_page < 1:
            raise ConfigurationError("max_actions_per_page must be at least 1")
        if self.decision_retries < 0:
            raise ConfigurationError("decision_retries must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a plain dictionary."""
        data = asdict(self)
        data["breaker"] = self.breaker.model_dump()
        data["providers"] = [p.model_dump(mode="json", exclude={"api_key"}) for p in self.providers]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorationConfig":
        """Create config from a dictionary, ignoring unknown top-level keys."""
        config = cls()

        try:
            for key, value in data.items():
                if key == "loop_guard":
                    config.loop_guard = LoopGuardConfig(**value)
                elif key == "page_budget":
                    config.page_budget = PageBudgetConfig(**value)
                elif key == "breaker":
                    config.breaker = CircuitBreakerConfig(**value)
                elif key == "providers":
                    config.providers = [AdvisorProviderConfig(**p) for p in value]
                elif key in {f.name for f in fields(config)}:
                    setattr(config, key, value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return config

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "ExplorationConfig":
        """
        Load configuration from a YAML file.

        Example YAML:
            max_steps: 50
            loop_guard:
              tool_loop_threshold: 2
            providers:
              - provider_type: openai
                model: gpt-4o
        """
        import yaml

        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, json_path: Union[str, Path]) -> "ExplorationConfig":
        """Load configuration from a JSON file."""
        path = Path(json_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {json_path}")

        with open(path, "r") as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ExplorationConfig":
        """Load YAML or JSON based on the file suffix."""
        if str(path).lower().endswith(".json"):
            return cls.from_json(path)
        return cls.from_yaml(path)

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        import yaml

        with open(yaml_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides.

        Variables follow the pattern BUGSCOUT_<SECTION>_<KEY>:
            BUGSCOUT_LOOP_GUARD_TOOL_LOOP_THRESHOLD=2
            BUGSCOUT_PAGE_BUDGET_MAX_ACTIONS_PER_PAGE=12
            BUGSCOUT_BREAKER_ENABLED=false
            BUGSCOUT_MAX_STEPS=50
        """
        prefix = "BUGSCOUT_"

        for env_var, value in os.environ.items():
            if not env_var.startswith(prefix):
                continue

            name = env_var[len(prefix):].lower()
            section = next((s for s in self._SECTIONS if name.startswith(s + "_")), None)

            if section is None:
                if name in {f.name for f in fields(self)} and name not in self._SECTIONS + ("providers",):
                    setattr(self, name, self._parse_env_value(value, getattr(self, name)))
                continue

            key = name[len(section) + 1:]
            target = getattr(self, section)
            if not hasattr(target, key):
                continue

            parsed = self._parse_env_value(value, getattr(target, key))
            if section == "breaker":
                self.breaker = CircuitBreakerConfig(**{**self.breaker.model_dump(), key: parsed})
            else:
                setattr(target, key, parsed)

    @staticmethod
    def _parse_env_value(value: str, current_value: Any) -> Any:
        """Parse an environment variable value based on the current type."""
        if isinstance(current_value, bool):
            return value.lower() in ("true", "1", "yes", "on")
        elif isinstance(current_value, int):
            return int(value)
        elif isinstance(current_value, float):
            return float(value)
        elif isinstance(current_value, list):
            return [item.strip() for item in value.split(",") if item.strip()]
        else:
            return value
