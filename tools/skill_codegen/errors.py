"""
Error types raised by the skill code generator.

Every error here is fatal: it is raised at the point of failure and the
generation run is aborted. Non-fatal conditions (unresolvable field types,
duplicate assignments) are reported through logging instead.
"""

from typing import Optional


class SkillCodegenError(Exception):
    """Base class for all generator errors"""


class ModelError(SkillCodegenError, ValueError):
    """Malformed behavior description (unparseable XML or missing attribute)"""

    def __init__(self, message: str, source: str = "", element: str = "",
                 line: Optional[int] = None):
        self.source = source
        self.element = element
        self.line = line
        location = source or "<string>"
        if line is not None:
            location = f"{location}:{line}"
        if element:
            location = f"{location} <{element}>"
        super().__init__(f"{location}: {message}")


class InterfaceError(SkillCodegenError, ValueError):
    """Malformed interface description (.srv / .msg)"""

    def __init__(self, message: str, source: str = "", line: Optional[int] = None):
        self.source = source
        self.line = line
        location = source or "<string>"
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"{location}: {message}")


class GenerationError(SkillCodegenError):
    """Template could not be fully expanded"""

    def __init__(self, message: str, placeholder: str = "", template: str = "",
                 line: Optional[int] = None):
        self.placeholder = placeholder
        self.template = template
        self.line = line
        location = template or "<template>"
        if line is not None:
            location = f"{location}:{line}"
        if placeholder:
            message = f"{message} (placeholder '{placeholder}')"
        super().__init__(f"{location}: {message}")
