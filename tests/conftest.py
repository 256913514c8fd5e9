# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""
Shared test fixtures for the BugScout test suite.

- Fake clock for breaker and page budget timing
- Scripted advisor backends returning canned LLM responses
- Fake browser serving in-memory pages
- In-memory finding sink and session store
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from bugscout.config import ExplorationConfig, LoopGuardConfig, PageBudgetConfig
from bugscout.exceptions import FindingSinkError
from bugscout.exploration.loop_guard import LoopGuard
from bugscout.exploration.page_context import PageBudgetEvaluator
from bugscout.exploration.session import ExplorationSession
from bugscout.exploration.state_machine import ExplorationStateMachine
from bugscout.exploration.types import ActionOutcome, InteractiveElement, PageObservation
from bugscout.exploration.url_discovery import URLDiscovery
from bugscout.llm.base import LLMResponse
from bugscout.llm.config import CircuitBreakerConfig
from bugscout.llm.gateway import DecisionGateway
from bugscout.persistence.findings import InMemoryFindingStore
from bugscout.tools import create_default_registry
from bugscout.utils.logger import logger
from bugscout.utils.page_utils import normalize_url, resolve_href


# ==================== Environment Setup ====================

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Keep test output quiet."""
    os.environ.setdefault("BUGSCOUT_LOG_LEVEL", "warning")
    logger.setLevel(logging.WARNING)
    yield


# ==================== Clock ====================

class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ==================== Advisor Backends ====================

def decision_json(action: str = "scroll", **fields: Any) -> str:
    """Serialize a decision the way an advisor would answer."""
    return json.dumps({"action": action, "reasoning": fields.pop("reasoning", "test"), **fields})


class ScriptedBackend:
    """
    Advisor backend answering from a script.

    Each script item is either response text or an exception to raise. When
    the script runs out, ``default`` is used (also text or exception).
    """

    def __init__(
        self,
        name: str,
        responses: Optional[Sequence[Any]] = None,
        default: Any = None,
    ) -> None:
        self.name = name
        self.responses: List[Any] = list(responses or [])
        self.default = default if default is not None else decision_json("scroll", value="down")
        self.requests: List[Any] = []
        self.summary_calls = 0
        self.healthy = True

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _respond(self) -> LLMResponse:
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return LLMResponse(
            content=item,
            model=self.name,
            usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        )

    async def request_decision(self, request: Any) -> LLMResponse:
        self.requests.append(request)
        return self._respond()

    async def analyze_finding(self, text: str, observation: Any = None) -> LLMResponse:
        return LLMResponse(
            content='{"severity": "high", "description": "Checkout total is wrong", "recommendation": "Fix rounding"}',
            model=self.name,
        )

    async def summarize(self, history: Any, findings: Any) -> LLMResponse:
        self.summary_calls += 1
        return LLMResponse(content="Explored the shop and found issues.", model=self.name)

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def backend_factory() -> Callable[..., ScriptedBackend]:
    return ScriptedBackend


@pytest.fixture
def decision() -> Callable[..., str]:
    return decision_json


# ==================== Browser ====================

def make_page(
    url: str,
    title: str = "",
    links: Optional[Dict[str, str]] = None,
    buttons: Sequence[str] = (),
    text: str = "",
    console_errors: Sequence[str] = (),
    network_errors: Sequence[str] = (),
) -> PageObservation:
    """Build an observation; ``links`` maps selector to href."""
    elements = [
        InteractiveElement(selector=selector, element_type="link", text=selector.strip("#."), href=href)
        for selector, href in (links or {}).items()
    ]
    elements += [InteractiveElement(selector=selector, element_type="button", text=selector) for selector in buttons]
    return PageObservation(
        url=url,
        title=title or url,
        visible_text=text or f"Content of {url}",
        elements=elements,
        console_errors=list(console_errors),
        network_errors=list(network_errors),
    )


class FakeBrowser:
    """Serves pre-built observations; clicking a link follows its href."""

    def __init__(self, pages: Optional[Sequence[PageObservation]] = None) -> None:
        self.pages: Dict[str, PageObservation] = {normalize_url(p.url): p for p in pages or []}
        self.url = "about:blank"
        self.actions: List[tuple] = []
        self.failing_selectors: set = set()
        self.images: List[Dict[str, Any]] = []
        self.observe_error: Optional[Exception] = None
        self._back_stack: List[str] = []

    def _page(self) -> PageObservation:
        return self.pages.get(normalize_url(self.url)) or make_page(self.url)

    def _go(self, url: str) -> None:
        self._back_stack.append(self.url)
        self.url = url

    async def navigate(self, url: str) -> ActionOutcome:
        self.actions.append(("navigate", url))
        self._go(url)
        return ActionOutcome(success=True, duration_ms=1.0)

    async def click(self, selector: str) -> ActionOutcome:
        self.actions.append(("click", selector))
        if selector in self.failing_selectors:
            return ActionOutcome(success=False, error=f"click on {selector} failed: element not found")
        for element in self._page().elements:
            if element.selector == selector and element.href:
                self._go(resolve_href(self.url, element.href))
        return ActionOutcome(success=True, duration_ms=1.0)

    async def fill(self, selector: str, value: str) -> ActionOutcome:
        self.actions.append(("fill", selector, value))
        return ActionOutcome(success=True)

    async def select(self, selector: str, value: str) -> ActionOutcome:
        self.actions.append(("select", selector, value))
        return ActionOutcome(success=True)

    async def hover(self, selector: str) -> ActionOutcome:
        self.actions.append(("hover", selector))
        return ActionOutcome(success=True)

    async def scroll(self, direction: str = "down") -> ActionOutcome:
        self.actions.append(("scroll", direction))
        return ActionOutcome(success=True)

    async def go_back(self) -> ActionOutcome:
        self.actions.append(("back",))
        if self._back_stack:
            self.url = self._back_stack.pop()
        return ActionOutcome(success=True)

    async def refresh(self) -> ActionOutcome:
        self.actions.append(("refresh",))
        return ActionOutcome(success=True)

    async def extract_observation(self) -> PageObservation:
        if self.observe_error is not None:
            raise self.observe_error
        page = self._page()
        return PageObservation(
            url=self.url,
            title=page.title,
            visible_text=page.visible_text,
            elements=list(page.elements),
            console_errors=list(page.console_errors),
            network_errors=list(page.network_errors),
        )

    async def current_url(self) -> str:
        return self.url

    async def evaluate(self, script: str) -> Any:
        return list(self.images)


SHOP_URL = "https://shop.example.com/"


@pytest.fixture
def shop_pages() -> List[PageObservation]:
    return [
        make_page(
            SHOP_URL,
            title="Shop",
            links={"#login": "/login", "#products": "/products", "#about": "/about"},
            buttons=("#search", "#newsletter"),
        ),
        make_page("https://shop.example.com/login", title="Login", buttons=("#submit",)),
        make_page("https://shop.example.com/products", title="Products", buttons=("#add-to-cart",)),
        make_page("https://shop.example.com/about", title="About"),
    ]


@pytest.fixture
def browser(shop_pages) -> FakeBrowser:
    return FakeBrowser(shop_pages)


# ==================== Sink and Store ====================

class RecordingSink(InMemoryFindingStore):
    """In-memory sink that can be told to fail."""

    def __init__(self, fail_on_save: bool = False) -> None:
        super().__init__()
        self.fail_on_save = fail_on_save
        self.save_attempts = 0

    async def save(self, finding) -> None:
        self.save_attempts += 1
        if self.fail_on_save:
            raise FindingSinkError("disk full")
        await super().save(finding)


class MemorySessionStore:
    """Keeps serialized checkpoints in a dict."""

    def __init__(self) -> None:
        self.checkpoints: List[Dict[str, Any]] = []
        self.fail = False

    async def save(self, session: ExplorationSession) -> None:
        if self.fail:
            raise OSError("read-only file system")
        self.checkpoints.append(session.to_dict())

    async def load(self, session_id: str) -> Optional[ExplorationSession]:
        for data in reversed(self.checkpoints):
            if data["id"] == session_id:
                return ExplorationSession.from_dict(data)
        return None


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


# ==================== Configuration ====================

@pytest.fixture
def exploration_config() -> ExplorationConfig:
    """Defaults with no retry delay and a deterministic summary."""
    return ExplorationConfig(
        loop_guard=LoopGuardConfig(),
        page_budget=PageBudgetConfig(),
        breaker=CircuitBreakerConfig(),
        max_steps=10,
        decision_retry_delay_seconds=0.0,
        generate_summary=False,
    )


@pytest.fixture
def make_machine(browser, sink, session_store, exploration_config, clock):
    """Build a state machine around the given advisor backends."""

    def _make(backends: Sequence[ScriptedBackend], **overrides: Any) -> ExplorationStateMachine:
        config = overrides.pop("config", exploration_config)
        gateway = DecisionGateway.from_backends(backends, config=config.breaker, clock=clock)

        async def no_sleep(_: float) -> None:
            return None

        kwargs: Dict[str, Any] = dict(
            browser=browser,
            gateway=gateway,
            loop_guard=LoopGuard(config.loop_guard),
            budget=PageBudgetEvaluator(config.page_budget),
            tools=create_default_registry(),
            finding_sink=sink,
            session_store=session_store,
            url_discovery=URLDiscovery(),
            config=config,
            clock=clock,
            sleep=no_sleep,
        )
        kwargs.update(overrides)
        return ExplorationStateMachine(**kwargs)

    return _make


@pytest.fixture
def new_session(exploration_config):
    def _new(max_steps: Optional[int] = None, **kwargs: Any) -> ExplorationSession:
        return ExplorationSession.create(
            SHOP_URL,
            max_steps=max_steps or exploration_config.max_steps,
            checkpoint_interval=kwargs.pop("checkpoint_interval", exploration_config.checkpoint_interval),
            **kwargs,
        )

    return _new


@pytest.fixture
def page_factory() -> Callable[..., PageObservation]:
    return make_page


@pytest.fixture
def sink_factory() -> Callable[..., RecordingSink]:
    return RecordingSink
