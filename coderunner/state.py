from typing import Optional

from coderunner.sandbox.languages import LanguageRegistry
from coderunner.sandbox.runtime import IsolationRuntime
from coderunner.sandbox.service import ExecutionLog

# Global runtime state initialized in main.lifespan. Only process-wide,
# shareable objects live here; per-run state belongs to each session.
runtime: Optional[IsolationRuntime] = None
registry: Optional[LanguageRegistry] = None
execution_log: Optional[ExecutionLog] = None
