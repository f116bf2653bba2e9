"""Classifier errors

Both are retryable: inference failures are transient from the job's point
of view, so the orchestrator retries them with backoff.
"""

from wisdomos.core.exceptions import RetryableAgentError


class ClassifierError(RetryableAgentError):
    """Inference call failed or returned an unusable answer"""


class ClassifierUnreachableError(ClassifierError):
    """Model endpoint unreachable (connection refused, timeout, DNS)

    Triggers the FallbackClassifier degradation path.
    """

    def __init__(self, base_url: str, original_error: Exception) -> None:
        super().__init__(f"Classifier endpoint unreachable: {base_url} -- {original_error}")
        self.base_url = base_url
        self.original_error = original_error
