"""
Fatal failures of a recommendation run.

Anything raised from here aborts the run; nothing is retried. Failures of the
search/retrieval capabilities are not represented: the tool invoker turns
them into error-bearing tool results instead.
"""


class WorkflowError(Exception):
    """Base class for every fatal run failure."""


class PreconditionError(WorkflowError):
    """The conversation state does not have the shape a step requires."""


class MissingJudgmentError(PreconditionError):
    def __init__(self, message: str = "grader produced no judgment: last message carries no tool calls"):
        super().__init__(message)


class InvalidScoreError(PreconditionError):
    def __init__(self, score):
        self.score = score
        super().__init__(f"expected relevance score to be a number between 0 and 1, got {score!r}")


class MissingToolResultError(PreconditionError):
    def __init__(self, message: str = "no tool result found in the conversation history"):
        super().__init__(message)


class MissingToolRequestError(PreconditionError):
    def __init__(self, message: str = "last message carries no pending tool calls"):
        super().__init__(message)


class NodeInvocationError(WorkflowError):
    """A model call made by a workflow node failed."""

    def __init__(self, node: str, cause: Exception):
        self.node = node
        self.cause = cause
        super().__init__(f"{node} invocation failed: {cause}")


class RefinementLimitError(WorkflowError):
    def __init__(self, refinements: int):
        self.refinements = refinements
        super().__init__(
            f"retrieved context still not relevant after {refinements} query refinements"
        )


class NoRecommendationError(WorkflowError):
    """The run reached its terminal state without an answer from the generator."""
