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
BugScout command line.

Usage:
    bugscout explore URL [OPTIONS]   # Explore a site and report suspected bugs
    bugscout resume SESSION_ID       # Continue a checkpointed session
    bugscout version                 # Show version information

Examples:
    bugscout explore https://shop.example --max-steps 50
    bugscout explore https://shop.example --provider openai:gpt-4o --provider anthropic
    bugscout explore https://shop.example --config bugscout.yaml --human
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import platform
import sys
from typing import List, Optional

from bugscout.cli.output import output
from bugscout.config import ExplorationConfig
from bugscout.exceptions import BugScoutError, ConfigurationError
from bugscout.exploration.events import ExplorationResult, ProgressEvent
from bugscout.exploration.loop_guard import LoopGuard
from bugscout.exploration.page_context import PageBudgetEvaluator
from bugscout.exploration.session import ExplorationSession
from bugscout.exploration.state_machine import ExplorationStateMachine
from bugscout.exploration.url_discovery import URLDiscovery
from bugscout.llm.config import API_KEY_ENV_VARS, DEFAULT_MODELS, AdvisorProviderConfig, AdvisorProviderType
from bugscout.llm.factory import create_gateway
from bugscout.persistence import JsonFindingStore, JsonSessionStore
from bugscout.shutdown import ShutdownController
from bugscout.tools import create_default_registry
from bugscout.utils.logger import LogFormat, configure_logging, logger


def get_version() -> str:
    import bugscout

    return getattr(bugscout, "__version__", "unknown")


def parse_provider(value: str) -> AdvisorProviderConfig:
    """
    Parse ``type[:model]`` into a provider config.

    Raises:
        ConfigurationError: For an unknown provider type
    """
    provider, _, model = value.partition(":")
    try:
        provider_type = AdvisorProviderType(provider.strip().lower())
    except ValueError:
        known = ", ".join(p.value for p in AdvisorProviderType)
        raise ConfigurationError(f"Unknown provider '{provider}' (expected one of: {known})")
    return AdvisorProviderConfig(
        provider_type=provider_type,
        model=model.strip() or DEFAULT_MODELS[provider_type],
    )


def detect_providers() -> List[AdvisorProviderConfig]:
    """Providers whose API key is present in the environment, in declaration order."""
    return [
        AdvisorProviderConfig(provider_type=provider_type, model=DEFAULT_MODELS[provider_type])
        for provider_type, env_var in API_KEY_ENV_VARS.items()
        if os.environ.get(env_var)
    ]


def build_config(args: argparse.Namespace) -> ExplorationConfig:
    """Config file, then environment overrides, then command line flags."""
    config = ExplorationConfig.load(args.config) if args.config else ExplorationConfig()
    config.apply_env_overrides()

    if args.providers:
        config.providers = [parse_provider(value) for value in args.providers]
    if args.max_steps is not None:
        config.max_steps = args.max_steps
    if args.max_duration is not None:
        config.max_duration_seconds = args.max_duration
    if args.objective:
        config.objective = args.objective
    if args.headed:
        config.headless = False
    if args.output_dir:
        config.session_dir = os.path.join(args.output_dir, "sessions")
        config.findings_dir = os.path.join(args.output_dir, "findings")

    if not config.providers:
        config.providers = detect_providers()
    if not config.providers:
        env_vars = " or ".join(API_KEY_ENV_VARS.values())
        raise ConfigurationError(f"No advisor configured: pass --provider or set {env_vars}")

    config.validate()
    return config


def _print_progress(event: ProgressEvent) -> None:
    output.print_status_line(
        f"{event.percent_complete:5.1f}%",
        f"step {event.step}/{event.max_steps}  findings {event.findings_count}  "
        f"pages {event.pages_visited}  {event.url}",
        ok=True,
    )


async def run_exploration(
    config: ExplorationConfig,
    session: ExplorationSession,
    shutdown: ShutdownController,
) -> ExplorationResult:
    """Wire the collaborators for ``session`` and drive it to the end."""
    from bugscout.core.browser import PlaywrightBrowser

    gateway = create_gateway(config.providers, config.breaker)
    findings = JsonFindingStore(config.findings_dir, session_id=session.id)
    for finding in await findings.load_all():
        await findings.register(finding)

    async with PlaywrightBrowser(
        headless=config.headless,
        action_timeout_seconds=config.action_timeout_seconds,
    ) as browser:
        machine = ExplorationStateMachine(
            browser=browser,
            gateway=gateway,
            loop_guard=LoopGuard(config.loop_guard),
            budget=PageBudgetEvaluator(config.page_budget),
            tools=create_default_registry(),
            finding_sink=findings,
            session_store=JsonSessionStore(config.session_dir),
            url_discovery=URLDiscovery(session.config.target_url),
            config=config,
            shutdown=shutdown,
            progress_callback=_print_progress,
        )
        return await machine.run(session)


def report(result: ExplorationResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    output.print_section("Exploration finished")
    output.print_summary("Session", {
        "Session": result.session_id,
        "Stopped": result.stopped_reason.value,
        "Steps": result.total_steps,
        "Pages": len(result.pages_visited),
        "Findings": len(result.findings),
        "Duration": f"{result.duration_seconds:.1f}s",
        "Tokens": result.token_usage.total_tokens,
        "Error": result.error,
    })
    if result.findings:
        output.print_list(
            "Findings",
            [f"[{f.severity.value}] {f.title} ({f.page_url})" for f in result.findings],
        )
    if result.summary:
        output.print_section("Summary")
        print(result.summary)


def _execute(config: ExplorationConfig, session: ExplorationSession, as_json: bool) -> int:
    with ShutdownController() as shutdown:
        try:
            result = asyncio.run(run_exploration(config, session, shutdown))
        except KeyboardInterrupt:
            output.print_status_line("STOP", f"Interrupted; checkpoint kept for session {session.id}", ok=False, warn=True)
            return 130
    report(result, as_json)
    return 0 if result.success else 1


def cmd_explore(args: argparse.Namespace) -> int:
    """Explore a site from its start URL."""
    try:
        config = build_config(args)
    except BugScoutError as e:
        output.print_status_line("FAIL", str(e), ok=False)
        return 2

    session = ExplorationSession.create(
        args.url,
        objective=config.objective,
        max_steps=config.max_steps,
        max_duration_seconds=config.max_duration_seconds,
        checkpoint_interval=config.checkpoint_interval,
    )
    if not args.json:
        output.print_summary("Exploration", {
            "Target": args.url,
            "Session": session.id,
            "Advisors": ", ".join(p.slot_name for p in config.providers),
            "Max steps": config.max_steps,
            "Headless": config.headless,
        })
    return _execute(config, session, args.json)


def cmd_resume(args: argparse.Namespace) -> int:
    """Continue a session from its last checkpoint."""
    try:
        config = build_config(args)
        session = asyncio.run(JsonSessionStore(config.session_dir).load(args.session_id))
    except BugScoutError as e:
        output.print_status_line("FAIL", str(e), ok=False)
        return 2

    if session is None:
        output.print_status_line("FAIL", f"No checkpoint for session {args.session_id} in {config.session_dir}", ok=False)
        return 2
    if session.status.is_terminal:
        output.print_status_line("FAIL", f"Session {session.id} already ended ({session.status.value})", ok=False)
        return 2

    logger.info(f"[CLI] Resuming session {session.id} at step {session.current_step}")
    return _execute(config, session, args.json)


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    version = get_version()
    if args.json:
        print(json.dumps({
            "bugscout": version,
            "python": platform.python_version(),
            "platform": platform.system(),
        }, indent=2))
    else:
        print(f"BugScout {version}")
    return 0


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="YAML or JSON configuration file")
    parser.add_argument(
        "--provider",
        dest="providers",
        action="append",
        metavar="TYPE[:MODEL]",
        help="Advisor backend; repeat for fallbacks in priority order (e.g. openai:gpt-4o)",
    )
    parser.add_argument("--max-steps", type=int, help="Global step ceiling")
    parser.add_argument("--max-duration", type=float, help="Session duration ceiling in seconds")
    parser.add_argument("--objective", help="What the exploration should focus on")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--output-dir", "-o", help="Directory for session checkpoints and findings")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="bugscout",
        description="BugScout - LLM-guided exploratory testing of web applications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  explore     Explore a site and report suspected bugs
  resume      Continue a checkpointed session
  version     Show version information
""",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("BUGSCOUT_LOG_LEVEL", "INFO"),
        help="Set logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=[f.value for f in LogFormat],
        default=os.environ.get("BUGSCOUT_LOG_FORMAT", LogFormat.JSON.value),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--human-readable", "--human",
        action="store_true",
        help="Shortcut for --log-format human",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    explore_parser = subparsers.add_parser("explore", help="Explore a site from a start URL")
    explore_parser.add_argument("url", help="Start URL")
    _add_run_options(explore_parser)
    explore_parser.set_defaults(func=cmd_explore)

    resume_parser = subparsers.add_parser("resume", help="Continue a checkpointed session")
    resume_parser.add_argument("session_id", help="Session ID")
    _add_run_options(resume_parser)
    resume_parser.set_defaults(func=cmd_resume)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.add_argument("--json", action="store_true", help="Output as JSON")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=args.log_level,
        log_format=LogFormat(args.log_format),
        human_readable=args.human_readable,
    )

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(0)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
