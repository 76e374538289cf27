from __future__ import annotations

from typing import Protocol

from infra_audit.core.models import ToolInvocation, ToolResult


class ToolRunner(Protocol):
    """Executes one tool invocation in the project root."""
    def run(self, invocation: ToolInvocation) -> ToolResult:
        """Execute a tool and return a normalized result.

        Args:
            invocation (ToolInvocation): Command, classification and timeout.

        Returns:
            ToolResult: Outcome with status, exit code and bounded output.
                Implementations must not raise for tool failures or timeouts.
        """
        ...

    def terminate(self) -> None:
        """Kill every invocation that is still running.

        Called on abnormal exit so the restore step does not race live tools.
        """
        ...
