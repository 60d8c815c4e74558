"""Domain errors for TemplateGen."""


class GenerationError(RuntimeError):
    """Raised when generation cannot continue safely."""


class GenerationCancelled(GenerationError):
    """Raised when the caller cancels a running generation."""
