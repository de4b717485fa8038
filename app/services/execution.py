# app/services/execution.py
"""
Contract between the HTTP layer and the code-execution sandbox.

The sandbox itself runs out of process; a deployment installs its client on
app.state.execution_engine at startup.
"""
from typing import Optional, Protocol

from fastapi import Request

from app.api.models.execute import ExecuteRequest, ExecutionResult


class ExecutionEngine(Protocol):
    async def execute(self, request: ExecuteRequest) -> ExecutionResult:
        """Run the submitted code and report the outcome."""
        ...


def get_execution_engine(request: Request) -> Optional[ExecutionEngine]:
    return getattr(request.app.state, "execution_engine", None)
