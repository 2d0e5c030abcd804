"""Analysis agents: analyzer, queue, triggers and host macro bridge."""

from .analyzer import Analyzer, AnalyzerState
from .send_queue import AnalysisQueue
from .macro_registry import GlobalMacroBridge, InMemoryMacroRegistry
from .trigger_engine import TriggerEngine
from .context import AppContext

__all__ = [
    "Analyzer",
    "AnalyzerState",
    "AnalysisQueue",
    "GlobalMacroBridge",
    "InMemoryMacroRegistry",
    "TriggerEngine",
    "AppContext",
]
