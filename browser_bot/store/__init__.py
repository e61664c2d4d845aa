from browser_bot.store.execution_store import (
    Execution,
    ExecutionStatus,
    ExecutionStore,
    FileExecutionStore,
)

__all__ = ["Execution", "ExecutionStatus", "ExecutionStore", "FileExecutionStore"]
