"""Custom exceptions for Gaia."""


class GaiaError(Exception):
    """Base exception for Gaia."""

    pass


class ConfigurationError(GaiaError):
    """Configuration-related errors."""

    pass


class LLMError(GaiaError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CacheError(GaiaError):
    """Response cache errors."""

    pass


class ToolError(GaiaError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool could not be invoked."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class CommandExecutionError(ToolError):
    """Shell command finished with a failing exit code or could not start."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class CommandTimeoutError(CommandExecutionError):
    """Shell command exceeded its timeout and was killed."""

    def __init__(self, timeout: float, stdout: str = "", stderr: str = ""):
        label = int(timeout) if float(timeout).is_integer() else timeout
        super().__init__(f"command timed out after {label}s", stdout=stdout, stderr=stderr)
        self.timeout = timeout


class OperatorError(GaiaError):
    """Operator (investigate) loop errors."""

    pass


class EmptyGoalError(OperatorError):
    """Goal was empty or whitespace only."""

    def __init__(self):
        super().__init__("goal cannot be empty")


class InvalidDecisionError(OperatorError):
    """Model output could not be turned into a decision."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class DecisionDecodeError(InvalidDecisionError):
    """Model output was not valid JSON."""

    pass


class DecisionValidationError(InvalidDecisionError):
    """Model output was JSON but not a valid decision."""

    pass


class OperatorIncompleteError(OperatorError):
    """Loop stopped without an answer; carries the best partial answer."""

    def __init__(self, message: str, partial_answer: str):
        super().__init__(message)
        self.partial_answer = partial_answer


class MaxStepsReachedError(OperatorIncompleteError):
    """Loop used all of its steps without an answer."""

    def __init__(self, partial_answer: str):
        super().__init__("max steps reached", partial_answer)


class RepeatedParseFailureError(OperatorIncompleteError):
    """Model kept returning output that could not be parsed."""

    def __init__(self, partial_answer: str, cause: InvalidDecisionError):
        super().__init__(f"repeated parse failures: {cause}", partial_answer)


class ActionCancelledError(GaiaError):
    """User cancelled an interactive tool action."""

    def __init__(self, message: str = "cancelled by user"):
        super().__init__(message)
