"""
Domain errors raised by the AI service and the generation pipelines.

The FastAPI layer in main.py translates these into HTTP responses; nothing
below the HTTP layer knows about status codes.
"""


class VeggieMuseError(Exception):
    """Base class for all application errors."""


class MissingApiKeyError(VeggieMuseError):
    """No Gemini API key was supplied with the request."""


class SafetyBlockedError(VeggieMuseError):
    """The provider refused the request on safety grounds. Never retried."""


class GenerationFailedError(VeggieMuseError):
    """The provider failed (overloaded, malformed output, network) after any retries."""


class GeneratorBusyError(VeggieMuseError):
    """A generation for the same client and generator is still in flight."""
