"""Error types for the agent loop."""


class AgentError(Exception):
    """Base error for all agent-session failures."""

    kind = "agent_error"


class ModelError(AgentError):
    """Invoking the model failed (request, stream or response shape)."""

    kind = "model_error"


class SessionCancelledError(AgentError):
    """The session was cancelled before it could finish."""

    kind = "cancelled"

    def __init__(self, message_id: str = "") -> None:
        self.message_id = message_id
        super().__init__("Session cancelled" + (f": {message_id}" if message_id else ""))


class SessionBusyError(AgentError):
    """Another session is already in flight on this orchestrator."""

    kind = "session_busy"

    def __init__(self, active_message_id: str) -> None:
        self.active_message_id = active_message_id
        super().__init__(f"A session is already running: {active_message_id}")


class ToolCallAbortedError(AgentError):
    """A tool failed while the tool-error policy is ``abort``."""

    kind = "tool_error"

    def __init__(self, tool_name: str, detail: str = "") -> None:
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Tool {tool_name} failed" + (f": {detail}" if detail else ""))


class ToolArgumentsError(AgentError):
    """The model produced tool arguments that are not a JSON object."""

    kind = "invalid_arguments"

    def __init__(self, tool_name: str, arguments: object) -> None:
        self.tool_name = tool_name
        self.arguments = arguments
        super().__init__(
            f"Tool {tool_name} expects an object of arguments, got {type(arguments).__name__}"
        )


class IterationLimitError(AgentError):
    """The loop reached ``max_iterations`` without a final answer."""

    kind = "iteration_limit"

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(f"Stopped after {max_iterations} iterations without a final answer")
