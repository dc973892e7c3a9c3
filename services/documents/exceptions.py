"""
Submission Pipeline Exceptions

Error taxonomy for transaction submission, document generation and
delivery. Channel adapters translate library errors into these types so
the orchestrator only ever has to reason about this module.
"""


class SubmissionError(Exception):
    """Base exception for all submission pipeline errors."""
    error_type = "submission"


class ConfigurationError(SubmissionError):
    """
    Raised when a layout definition is invalid.

    This includes YAML syntax errors, unknown transforms and
    variants that reference party slots the layout does not define.
    """
    error_type = "configuration"


class TemplateError(SubmissionError):
    """
    Raised when the document template cannot be loaded or parsed.

    Fatal for the generate stage; retrying with the same template
    will not help.
    """
    error_type = "template"


class RenderTimeoutError(SubmissionError):
    """
    Raised when the document-rendering call exceeds its timeout.

    The caller may retry the generate stage by re-submitting the record
    with its preserved record id.
    """
    error_type = "timeout"

    def __init__(self, message: str, timeout: float = None):
        self.timeout = timeout
        super().__init__(message)


class RecordStoreError(SubmissionError):
    """
    Raised when the hosted record store rejects a call.

    Fatal during the save stage, logged and absorbed during the
    attachment fallback.
    """
    error_type = "record_store"

    def __init__(self, message: str, status_code: int = None, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class DeliveryChannelError(SubmissionError):
    """
    Raised when email or object storage delivery fails.

    Never fatal; triggers the next branch of the fallback chain.
    """
    error_type = "delivery"

    def __init__(self, message: str, channel: str = None, status_code: int = None, response_body: str = None):
        self.channel = channel
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class SizeLimitError(SubmissionError):
    """
    Raised when a blob cannot be brought under a channel's ceiling and
    the channel does not accept a note in place of the attachment.
    """
    error_type = "size_limit"

    def __init__(self, message: str, size: int = None, ceiling: int = None):
        self.size = size
        self.ceiling = ceiling
        super().__init__(message)
