"""
TemplateGen - Generate renamed, reconfigured projects from a template tree
"""

__version__ = "0.3.0"

from .core import GenerationError, TemplateEngine

__all__ = ["TemplateEngine", "GenerationError"]
