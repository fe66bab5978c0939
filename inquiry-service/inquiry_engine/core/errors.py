"""
errors.py — Exception taxonomy for the matching engine.

    ProviderUnavailable  embedding backend down or not configured
                         → recovered by falling back to lexical scoring
    ProviderError        generation backend failed
                         → recovered by the template fallback
    ValidationFailure    generated text rejected by ResponseValidator
                         → recovered by one conservative retry, then accepted
    CorpusUnavailable    dataset could not be loaded
                         → fatal, propagates to the operator

An empty candidate list is NOT an error.
"""


class InquiryEngineError(Exception):
    """Base class for all engine errors."""


class ProviderUnavailable(InquiryEngineError):
    """An external provider (embedding or generation) cannot be reached."""


class ProviderError(InquiryEngineError):
    """The generation provider returned an error or an unusable payload."""


class ValidationFailure(InquiryEngineError):
    """A generated response did not pass ResponseValidator."""

    def __init__(self, result, text: str = ""):
        self.result = result
        self.text = text
        super().__init__(
            f"Response rejected (score={result.score}): {'; '.join(result.issues)}"
        )


class CorpusUnavailable(InquiryEngineError):
    """The historical corpus could not be loaded."""
