"""Error taxonomy shared by every stage of the pipeline."""


class PipelineError(Exception):
    """Base class. The message is shown to the user as-is."""


class ValidationError(PipelineError):
    """Bad input. Surfaced immediately, never retried."""


class TransientBackendError(PipelineError):
    """Backend timeout or outage. Retried with backoff."""


class FatalProcessingError(PipelineError):
    """Unsupported or undecodable content. Fails the job immediately."""


class JobCancelledError(PipelineError):
    pass


class JobNotFoundError(PipelineError):
    pass


class JobNotReadyError(PipelineError):
    pass


class InvalidTransitionError(PipelineError):
    pass


class PayloadTooLargeError(ValidationError):
    pass


class UnsupportedFormatError(ValidationError):
    pass
