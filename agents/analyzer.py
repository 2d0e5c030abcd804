"""
Analyzer - runs one suite against the conversation and writes the results.

Flow:
1. Build the suite prompt and floor range
2. Append tag-format instructions for the suite's enabled variables
3. Call the model
4. Parse tagged sections out of the reply
5. Assign: stack variables get a new entry, replace variables a new value
"""

import asyncio
from enum import Enum
from typing import List, Optional

from core import ModelCallError, get_logger
from core.interfaces import ChatHost, ModelClient
from memory.suite_registry import SuiteRegistry
from memory.variable_store import VariableStore
from schemas import (
    AnalysisResult,
    ApplyResult,
    AssignmentReport,
    ModelMessage,
    ParsedTag,
    VariableDefinition,
)
from utils import tag_parser
from utils.macro_processor import MacroContext
from utils.prompt_builder import PromptBuilder

logger = get_logger(__name__)


class AnalyzerState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    ABORTED = "aborted"
    FAILED = "failed"


class Analyzer:
    """
    Suite analysis orchestrator.

    Only one analysis runs at a time. abort() cancels the in-flight model
    call; a cancellation that did not come from abort() (the queue
    cancelling the task running analyze) is re-raised to the caller.
    """

    def __init__(
        self,
        store: VariableStore,
        registry: SuiteRegistry,
        host: ChatHost,
        model: ModelClient,
        prompt_builder: PromptBuilder,
    ):
        self.store = store
        self.registry = registry
        self.host = host
        self.model = model
        self.prompt_builder = prompt_builder

        self.state = AnalyzerState.IDLE
        self.last_status: Optional[AnalyzerState] = None
        self.last_response: Optional[str] = None
        self.last_parsed_results: List[ParsedTag] = []
        self.last_floor_range: Optional[str] = None

        self._model_call: Optional[asyncio.Task] = None
        self._abort_requested = False

    def is_analyzing(self) -> bool:
        return self.state == AnalyzerState.ANALYZING

    async def analyze(
        self,
        suite_id: str,
        chat_id: Optional[str] = None,
        chat_length: Optional[int] = None,
        auto_assign: bool = True,
    ) -> AnalysisResult:
        """
        Run a suite.

        Args:
            suite_id: Suite to run
            chat_id: Chat the results belong to (defaults to the host's current chat)
            chat_length: Only the first chat_length messages are visible
            auto_assign: Write parsed results into the variable store

        Returns:
            AnalysisResult with status success, failed or aborted

        Raises:
            asyncio.CancelledError: the caller's task was cancelled
        """
        if self.state == AnalyzerState.ANALYZING:
            logger.warning("Analysis already running", suite_id=suite_id)
            return AnalysisResult.fail("Analysis already running", status="failed")

        self.state = AnalyzerState.ANALYZING
        self._abort_requested = False
        outcome = AnalyzerState.FAILED
        try:
            result = await self._run(suite_id, chat_id, chat_length, auto_assign)
            outcome = AnalyzerState(result.status)
            return result
        except asyncio.CancelledError:
            outcome = AnalyzerState.ABORTED
            logger.info("Analysis aborted", suite_id=suite_id)
            if self._abort_requested:
                return AnalysisResult.fail("Analysis aborted", status="aborted")
            raise
        except Exception as e:
            logger.error("Analysis failed", suite_id=suite_id, error=str(e))
            return AnalysisResult.fail(str(e), status="failed")
        finally:
            self._model_call = None
            self.last_status = outcome
            self.state = AnalyzerState.IDLE

    async def _run(
        self,
        suite_id: str,
        chat_id: Optional[str],
        chat_length: Optional[int],
        auto_assign: bool,
    ) -> AnalysisResult:
        suite = self.registry.get_suite(suite_id)
        if suite is None:
            return AnalysisResult.fail("Suite not found", status="failed")

        current_chat = self.host.chat_id
        chat_id = chat_id or current_chat
        if not chat_id:
            logger.warning("No active chat, analysis skipped", suite_id=suite_id)
            return AnalysisResult.fail("No active chat", status="failed")
        if chat_id != current_chat:
            # Host messages belong to another conversation now
            logger.warning("Conversation changed since enqueue", suite_id=suite_id, chat_id=chat_id)
            return AnalysisResult.fail("Conversation changed", status="failed")

        messages = self.host.get_messages()
        if chat_length is not None:
            messages = messages[:chat_length]

        self.store.preload(chat_id)
        built = self.prompt_builder.build(suite_id, MacroContext(chat_id=chat_id, messages=messages))
        if not built.prompt.strip():
            return AnalysisResult.fail("Suite has no visible content", status="failed")
        self.last_floor_range = built.floor_range

        variables = self._enabled_variables(suite_id)
        if not variables:
            return AnalysisResult.fail("Suite has no enabled variables", status="failed")

        full_prompt = built.prompt + "\n\n" + tag_parser.generate_tag_instructions(variables)
        logger.info(
            "Analysis started",
            suite_id=suite_id,
            suite_name=suite.name,
            chat_id=chat_id,
            floor_range=built.floor_range,
            variables=len(variables),
        )

        try:
            text = await self._call_model(full_prompt)
        except ModelCallError as e:
            logger.error("Analysis model call failed", suite_id=suite_id, error=str(e))
            return AnalysisResult.fail(e.message, status="failed", floor_range=built.floor_range)

        self.last_response = text
        results = tag_parser.parse(text, variables)
        self.last_parsed_results = results

        completeness = tag_parser.check_completeness(results, variables)
        if not completeness.complete:
            logger.warning("Incomplete analysis response", suite_id=suite_id, missing=completeness.missing)

        assigned = 0
        if auto_assign and results:
            assigned = self.assign_results(results, chat_id, built.floor_range).assigned

        logger.info("Analysis finished", suite_id=suite_id, results=len(results), assigned=assigned)
        return AnalysisResult.ok(
            status="success",
            results=results,
            assigned=assigned,
            floor_range=built.floor_range,
            raw_response=text,
        )

    def _enabled_variables(self, suite_id: str) -> List[VariableDefinition]:
        variables = []
        for variable_id in self.registry.get_enabled_variable_ids(suite_id):
            definition = self.store.get_definition(variable_id)
            if definition is not None:
                variables.append(definition)
        return variables

    async def _call_model(self, prompt: str) -> str:
        self._model_call = asyncio.ensure_future(
            self.model.generate([ModelMessage(role="user", content=prompt)])
        )
        response = await self._model_call
        return response.text

    def abort(self) -> bool:
        """Cancel the in-flight model call. Returns False when nothing is running."""
        if self._model_call is None or self._model_call.done():
            return False
        self._abort_requested = True
        self._model_call.cancel()
        return True

    def assign_results(
        self, results: List[ParsedTag], chat_id: Optional[str], floor_range: str
    ) -> AssignmentReport:
        """Write parsed results into the store. One failing variable does not stop the rest."""
        report = AssignmentReport()
        for result in results:
            definition = None
            if result.variable_id:
                definition = self.store.get_definition(result.variable_id)
            if definition is None:
                definition = self.store.get_definition_by_tag(result.tag)
            if definition is None:
                logger.warning("No variable for tag", tag=result.tag)
                report.failed.append(result.tag)
                continue

            try:
                if definition.mode == "stack":
                    outcome = self.store.add_entry(definition.id, chat_id, result.content, floor_range)
                else:
                    outcome = self.store.set_value(definition.id, chat_id, result.content, floor_range)
            except Exception as e:
                logger.error("Assigning result failed", variable=definition.name, error=str(e))
                report.failed.append(result.tag)
                continue

            if outcome.success:
                report.assigned += 1
            else:
                logger.warning("Assigning result rejected", variable=definition.name, error=outcome.error)
                report.failed.append(result.tag)
        return report

    def parse_and_apply(self, text: str, suite_id: str, chat_id: Optional[str] = None) -> ApplyResult:
        """Parse an edited response and assign it with the last floor range."""
        chat_id = chat_id or self.host.chat_id
        if not chat_id:
            logger.warning("No active chat, apply skipped", suite_id=suite_id)
            return ApplyResult.fail("No active chat")

        variables = self._enabled_variables(suite_id)
        if not variables:
            return ApplyResult.fail("Suite has no enabled variables")

        results = tag_parser.parse(text, variables)
        if not results:
            logger.info("No tagged content in edited response", suite_id=suite_id)
            return ApplyResult.ok(applied=0)

        floor_range = self.last_floor_range or str(len(self.host.get_messages()))
        self.last_response = text
        self.last_parsed_results = results
        report = self.assign_results(results, chat_id, floor_range)
        return ApplyResult.ok(applied=report.assigned)
