"""
Variable analysis - command line entry point.

Runs suites against a transcript file and prints the resulting variable values.

Usage:
    python main.py transcript.json                 # run every enabled suite
    python main.py transcript.json --suite Memory  # run one suite by name
    python main.py transcript.json --list          # show variables and suites

The transcript is a JSON object {"chatId": "...", "messages": [{"text", "is_user", "name"}]}.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from agents import AppContext
from config.settings import settings
from core import ConfigurationError, configure_logging, get_logger
from core.events import QueueTaskFinished
from schemas import ChatMessage
from utils.llm_client import LLMClient

logger = get_logger(__name__)


class TranscriptHost:
    """ChatHost over a transcript loaded from disk."""

    def __init__(self, chat_id: str, messages: List[ChatMessage]):
        self._chat_id = chat_id
        self._messages = messages

    @classmethod
    def from_file(cls, path: Path) -> "TranscriptHost":
        data = json.loads(path.read_text(encoding="utf-8"))
        messages = [ChatMessage.model_validate(m) for m in data.get("messages", [])]
        return cls(data.get("chatId") or path.stem, messages)

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    def get_messages(self) -> List[ChatMessage]:
        return list(self._messages)


def section(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")


def show(ctx: AppContext) -> None:
    section("Variables")
    for definition in ctx.store.get_definitions():
        value = ctx.store.get_variable_value(definition.id, ctx.host.chat_id)
        print(f"\n[{definition.mode}] {definition.name} <{definition.tag}>")
        print(value or "(empty)")

    section("Suites")
    active = ctx.registry.get_active_suite()
    for suite in ctx.registry.get_suites():
        marker = "*" if active and suite.id == active.id else " "
        state = "enabled" if suite.enabled else "disabled"
        print(f"{marker} {suite.name} ({state}, trigger={suite.trigger.type}, items={len(suite.items)})")


async def run(ctx: AppContext, suite_name: Optional[str]) -> int:
    suites = ctx.registry.get_enabled_suites()
    if suite_name:
        suites = [s for s in ctx.registry.get_suites() if s.name == suite_name]
    if not suites:
        print("No matching suites.")
        return 1

    failures: List[QueueTaskFinished] = []

    def on_finished(event: QueueTaskFinished) -> None:
        if event.status != "success":
            failures.append(event)

    ctx.bus.subscribe(QueueTaskFinished, on_finished)
    for suite in suites:
        ctx.engine.trigger_analysis(suite.id, "manual")
    await ctx.queue.join()

    for event in failures:
        print(f"{event.suite_name}: {event.status} ({event.error})")
    show(ctx)
    return 1 if failures else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run variable analysis suites over a transcript")
    parser.add_argument("transcript", type=Path, help="Transcript JSON file")
    parser.add_argument("--suite", help="Suite name to run (default: every enabled suite)")
    parser.add_argument("--list", action="store_true", help="List variables and suites, then exit")
    parser.add_argument("--model", default=settings.MODEL_ANALYSIS, help="Analysis model")
    args = parser.parse_args()

    configure_logging()
    host = TranscriptHost.from_file(args.transcript)
    try:
        ctx = AppContext.create(host, model=LLMClient(model=args.model))
    except ConfigurationError as e:
        logger.error("Invalid configuration", setting=e.context["setting"], error=e.message)
        return 2
    ctx.bridge.register_all()
    try:
        if args.list:
            show(ctx)
            return 0
        return asyncio.run(run(ctx, args.suite))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
