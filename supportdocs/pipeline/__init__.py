"""Generation pipeline: context, sandbox execution, parsing, usage, persistence."""

from .context_builder import ContextBuilder, SandboxInput
from .sandbox import SandboxExecutor, SandboxResult, Invocation, ProcessOutcome
from .output_parser import OutputParser, strip_fences
from .results import ParseSuccess, ParseFailure
from .usage_tracker import UsageTracker
from .persister import ResultPersister

__all__ = [
    "ContextBuilder",
    "SandboxInput",
    "SandboxExecutor",
    "SandboxResult",
    "Invocation",
    "ProcessOutcome",
    "OutputParser",
    "strip_fences",
    "ParseSuccess",
    "ParseFailure",
    "UsageTracker",
    "ResultPersister",
]
