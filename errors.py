class SignalingServerError(Exception):
    """Base class for errors raised by the signaling server core."""


class BackendError(SignalingServerError):
    """The key-value backend failed or timed out."""


class GenerationExhausted(SignalingServerError):
    """Every attempt to draw a fresh access code collided with an existing one."""


class CodeAlreadyExists(SignalingServerError):
    pass


class InvalidCodeRequest(SignalingServerError, ValueError):
    pass
