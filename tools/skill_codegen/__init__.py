"""
SCXML skill code generator

Turns a skill behavior description (SCXML with ROS 2 extensions) and the ROS 2
interfaces it uses into the C++ sources of a skill node.
"""

from .codegen import CodeGenerator, GeneratedSources, GeneratorOptions, TemplateEngine
from .errors import GenerationError, InterfaceError, ModelError, SkillCodegenError
from .interface_catalog import InterfaceCatalog
from .model import EventDescriptor, FieldType, RawEventModel, TypedEventModel
from .scxml_parser import SkillSCXMLParser
from .type_resolver import TypeResolver, resolve

__version__ = "0.1.0"

__all__ = [
    "CodeGenerator",
    "EventDescriptor",
    "FieldType",
    "GeneratedSources",
    "GenerationError",
    "GeneratorOptions",
    "InterfaceCatalog",
    "InterfaceError",
    "ModelError",
    "RawEventModel",
    "SkillCodegenError",
    "SkillSCXMLParser",
    "TemplateEngine",
    "TypeResolver",
    "TypedEventModel",
    "resolve",
]
