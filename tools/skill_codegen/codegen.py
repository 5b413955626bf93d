#!/usr/bin/env python3
"""
Skill Code Generator (Python + Jinja2)

Generates a C++ ROS 2 skill node (header + implementation) from a skill
behavior description in SCXML and the ROS 2 interface files it uses.

Placeholders in skill templates use the form $model.path$; blocks repeated per
service client / topic subscriber are ordinary Jinja2 for-loops over
``events``, ``services`` or ``topics``.
"""

import argparse
import logging
import os
import re
import sys
import tempfile
import traceback
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
    meta,
    select_autoescape,
)

from .errors import GenerationError, SkillCodegenError
from .header_config import get_generated_file_header
from .interface_catalog import InterfaceCatalog
from .model import EventDescriptor, FieldType, ResolvedField, TypedEventModel, to_snake_case
from .scxml_parser import SkillSCXMLParser, skill_class_name
from .type_resolver import TypeResolver

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / 'templates'
DEFAULT_TEMPLATE_SET = {
    'header': 'skill.h.jinja2',
    'source': 'skill.cpp.jinja2',
}

# A $token$ that survived rendering
LEFTOVER_PLACEHOLDER = re.compile(r'\$([A-Za-z_][A-Za-z0-9_.|]*)\$')

_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined")
_MISSING_ATTRIBUTE = re.compile(r"has no attribute '([^']+)'")
_CPP_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')

# QVariant has no constructor for std::(u)int64_t on LP64 platforms
_QVARIANT_CASTS = {
    FieldType.INT64: 'qlonglong',
    FieldType.UINT64: 'qulonglong',
}


@dataclass
class GeneratorOptions:
    """Settings shared by the template engine and the CLI"""
    template_dir: Optional[Path] = None
    output_dir: Path = Path('.')
    class_name: Optional[str] = None
    service_wait_timeout_ms: int = 1000
    service_max_retries: int = 10
    subscription_queue_size: int = 10

    def validate(self):
        if self.class_name is not None and not _CPP_IDENTIFIER.fullmatch(self.class_name):
            raise ValueError(f"class name '{self.class_name}' is not a C++ identifier")
        if self.service_wait_timeout_ms <= 0:
            raise ValueError("service wait timeout must be positive")
        if self.service_max_retries < 1:
            raise ValueError("service retry count must be at least 1")
        if self.subscription_queue_size < 1:
            raise ValueError("subscription queue size must be at least 1")


@dataclass(frozen=True)
class GeneratedSources:
    """Fully expanded declarations and implementation units"""
    class_name: str
    header_name: str
    header: str
    source_name: str
    source: str


def field_access(field: ResolvedField, root: str) -> str:
    """
    C++ expression reading one response field

    Strings are handed to the state machine as raw character data; every other
    type is read directly, widened to a Qt integer type where QVariant needs it.

    Raises:
        GenerationError: Field is an array or nested message, which has no
            QVariant representation
    """
    expression = f"{root}->{field.name}"
    if field.field_type is FieldType.STRING:
        return f"{expression}.c_str()"
    if field.field_type is FieldType.WSTRING:
        return f"QString::fromStdU16String({expression})"
    if field.field_type is FieldType.COMPOUND:
        raise GenerationError(
            f"Field '{field.name}' (assigned to '{field.datamodel_var}') is an array or "
            f"nested message and cannot be passed to the state machine",
            placeholder='eventData.response_fields')
    if field.field_type in _QVARIANT_CASTS:
        return f"static_cast<{_QVARIANT_CASTS[field.field_type]}>({expression})"
    return expression


def cpp_identifier(name: str) -> str:
    """'/battery/level' -> 'battery_level'"""
    identifier = re.sub(r'\W+', '_', name).strip('_')
    if identifier[:1].isdigit():
        identifier = '_' + identifier
    return identifier


def pascal_case(identifier: str) -> str:
    return ''.join(p[:1].upper() + p[1:] for p in identifier.split('_') if p)


class TemplateEngine:
    """
    Expands skill templates against a TypedEventModel

    Uses Jinja2 with '$' variable delimiters so skill templates read as the
    C++ they produce.
    """

    def __init__(self, template_dir=None):
        if template_dir is None:
            template_dir = DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)

        # Setup Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            variable_start_string='$',
            variable_end_string='$',
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        # Add custom filters
        self.env.filters['escape_cpp'] = self._escape_cpp_string

    def _escape_cpp_string(self, text):
        """Escape C++ string literals"""
        if not text:
            return ""
        # Escape backslashes first
        text = text.replace('\\', '\\\\')
        text = text.replace('"', '\\"')
        text = text.replace('\n', '\\n')
        text = text.replace('\r', '\\r')
        text = text.replace('\t', '\\t')
        return text

    def generate(self, model: TypedEventModel, template_set: Optional[Dict[str, str]] = None,
                 options: Optional[GeneratorOptions] = None) -> GeneratedSources:
        """
        Render the header and implementation templates

        Args:
            model: Resolved event model
            template_set: {'header': name, 'source': name} inside template_dir
            options: Retry/queue settings and class name override

        Returns:
            GeneratedSources with both texts

        Raises:
            GenerationError: Unknown placeholder, template error or leftover marker
        """
        template_set = dict(template_set or DEFAULT_TEMPLATE_SET)
        options = options or GeneratorOptions()
        options.validate()

        for role in DEFAULT_TEMPLATE_SET:
            if role not in template_set:
                raise GenerationError(f"Template set has no '{role}' template")

        context = self.build_context(model, options)
        header = self.render(template_set['header'], context)
        source = self.render(template_set['source'], context)

        return GeneratedSources(
            class_name=context['class_name'],
            header_name=context['header_file'],
            header=header,
            source_name=context['source_file'],
            source=source,
        )

    def build_context(self, model: TypedEventModel, options: GeneratorOptions) -> Dict:
        """Singleton tokens plus one entry per EventDescriptor"""
        class_name = options.class_name or skill_class_name(model.name)
        # Client names are unique per skill file
        by_client = {d.client_name: self._event_data(d) for d in model.events}
        events = list(by_client.values())
        services = [by_client[d.client_name] for d in model.services]
        topics = [by_client[d.client_name] for d in model.topics]

        self._check_unique_names(events)

        return {
            'skill_name': model.name,
            'class_name': class_name,
            'node_name': to_snake_case(skill_class_name(model.name)),
            'header_file': f"{class_name}.h",
            'source_file': f"{class_name}.cpp",
            'state_machine_header': f"{class_name}SM.h",
            'header_guard': f"{cpp_identifier(class_name).upper()}_H",
            'generated_header': get_generated_file_header(Path(model.source).name),
            'service_wait_timeout_ms': options.service_wait_timeout_ms,
            'service_max_retries': options.service_max_retries,
            'subscription_queue_size': options.subscription_queue_size,
            'initial_state': model.initial,
            'datamodel': list(model.datamodel),
            'interface_includes': sorted({data['include_path'] for data in events}),
            'events': events,
            'services': services,
            'topics': topics,
            'has_services': bool(services),
            'has_topics': bool(topics),
        }

    @staticmethod
    def _check_unique_names(events: List[Dict]):
        """Distinct client names must not collapse onto one generated C++ name"""
        seen = {}
        for data in events:
            method = 'call_method' if data['is_service'] else 'callback_method'
            for key in ('member_name', method):
                name = data[key]
                if name in seen:
                    raise GenerationError(
                        f"'{data['client_name']}' and '{seen[name]}' map to the same "
                        f"C++ name '{name}'", placeholder=f'eventData.{key}')
                seen[name] = data['client_name']

    def _event_data(self, descriptor: EventDescriptor) -> Dict:
        """Template view of one descriptor ($eventData.<field>$)"""
        data = {f.name: getattr(descriptor, f.name) for f in fields(descriptor)}

        if descriptor.is_service:
            subfolder, root, ros_name = 'srv', 'response', descriptor.service_name
        else:
            subfolder, root, ros_name = 'msg', 'msg', descriptor.topic_name

        identifier = cpp_identifier(descriptor.client_name) or cpp_identifier(descriptor.function_name)
        event_base = '.'.join(p for p in ros_name.split('/') if p)

        # Emit each response field once; the datamodel variable is last-write-wins
        response_fields = []
        emitted = set()
        for field in descriptor.resolved_fields:
            if field.name in emitted:
                continue
            emitted.add(field.name)
            response_fields.append({
                'name': field.name,
                'datamodel_var': field.datamodel_var,
                'type': field.field_type.value,
                'source': field.source.value,
                'access': field_access(field, root),
            })

        data.update({
            'is_service': descriptor.is_service,
            'kind': descriptor.interface_kind.value,
            'interface_id': descriptor.interface_id,
            'ros_name': ros_name,
            'identifier': identifier,
            'member_name': f"m_{'client' if descriptor.is_service else 'subscription'}_{identifier}",
            'type_token': f"{descriptor.interface_name}::{subfolder}::{descriptor.service_type_name}",
            'include_path': f"{descriptor.interface_name}/{subfolder}/{descriptor.service_type_snake}.hpp",
            'event_call': f"{event_base}.Call",
            'event_return': f"{event_base}.Return" if descriptor.is_service else f"{event_base}.Sub",
            'call_method': f"call{pascal_case(identifier)}",
            'callback_method': f"on{pascal_case(identifier)}"
                               f"{'Response' if descriptor.is_service else 'Message'}",
            'response_root': root,
            'response_fields': response_fields,
            'request_fields': list(descriptor.request_fields),
        })
        return data

    def render(self, template_name: str, context: Dict) -> str:
        """Render one template, turning every expansion failure into GenerationError"""
        try:
            source, filename, _ = self.env.loader.get_source(self.env, template_name)
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise GenerationError(f"Template not found in {self.template_dir}",
                                  template=str(e.name)) from e
        except TemplateSyntaxError as e:
            raise GenerationError(e.message or "Template syntax error",
                                  template=e.filename or template_name, line=e.lineno) from e

        # Top-level tokens the model cannot supply
        undeclared = sorted(meta.find_undeclared_variables(self.env.parse(source)) - set(context))
        if undeclared:
            name = undeclared[0]
            raise GenerationError("Unresolved placeholder", placeholder=name,
                                  template=filename, line=self._find_line(source, name))

        try:
            output = template.render(**context)
        except UndefinedError as e:
            raise GenerationError("Unresolved placeholder", placeholder=self._undefined_name(e),
                                  template=filename, line=self._template_line(e, filename)) from e

        leftover = LEFTOVER_PLACEHOLDER.search(output)
        if leftover:
            line = output.count('\n', 0, leftover.start()) + 1
            raise GenerationError(f"Placeholder left in output line {line}",
                                  placeholder=leftover.group(1), template=filename,
                                  line=self._find_line(source, leftover.group(1)))
        return output

    @staticmethod
    def _find_line(source: str, token: str) -> Optional[int]:
        match = re.search(r'\$\s*' + re.escape(token) + r'\b', source)
        if match is None:
            match = re.search(r'\b' + re.escape(token) + r'\b', source)
        if match is None:
            return None
        return source.count('\n', 0, match.start()) + 1

    @staticmethod
    def _undefined_name(error: UndefinedError) -> str:
        message = str(error.message or error)
        for pattern in (_MISSING_ATTRIBUTE, _UNDEFINED_NAME):
            match = pattern.search(message)
            if match:
                return match.group(1)
        return message

    @staticmethod
    def _template_line(error: Exception, filename: str) -> Optional[int]:
        # Jinja2 rewrites traceback frames to point at template lines
        line = None
        for frame in traceback.extract_tb(error.__traceback__):
            if frame.filename == filename:
                line = frame.lineno
        return line


class CodeGenerator:
    """
    Skill code generator: extract -> resolve -> render -> write
    """

    def __init__(self, options: Optional[GeneratorOptions] = None):
        self.options = options or GeneratorOptions()
        self.engine = TemplateEngine(self.options.template_dir)

    def build(self, scxml_path, interface_paths: List) -> GeneratedSources:
        """
        Run the full pipeline in memory

        Raises:
            SkillCodegenError: Any fatal parse, resolution or generation error
        """
        catalog = InterfaceCatalog.load(interface_paths)
        raw = SkillSCXMLParser().parse_file(scxml_path)

        print(f"Generating code for: {raw.name}")
        print(f"  States: {len(raw.states)}")
        print(f"  Service clients: {sum(1 for e in raw.events if e.is_service)}")
        print(f"  Topic subscribers: {sum(1 for e in raw.events if not e.is_service)}")
        print(f"  Interfaces loaded: {len(catalog)}")
        for package, type_name in catalog.keys():
            logger.debug("Interface available: %s/%s", package, type_name)

        typed = TypeResolver(catalog).resolve(raw)
        return self.engine.generate(typed, options=self.options)

    def generate(self, scxml_path, interface_paths: List) -> bool:
        """
        Generate C++ code from a skill SCXML file

        Args:
            scxml_path: Path to the behavior description
            interface_paths: .srv/.msg files or directories containing them

        Returns:
            True if both files were written, False otherwise
        """
        try:
            generated = self.build(scxml_path, interface_paths)
            for path in write_outputs(generated, self.options.output_dir):
                print(f"  ✓ Generated: {path}")
            return True

        except (SkillCodegenError, ValueError, OSError) as e:
            print(f"Error generating code: {e}", file=sys.stderr)
            logger.debug("Generation failed", exc_info=True)
            return False


def write_outputs(generated: GeneratedSources, output_dir) -> List[Path]:
    """
    Write both artifacts, replacing existing files only once both are on disk
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    staged = []
    try:
        for name, text in ((generated.header_name, generated.header),
                           (generated.source_name, generated.source)):
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", dir=str(output_dir))
            staged.append((Path(tmp_name), output_dir / name))
            with os.fdopen(fd, 'w', encoding='utf-8', newline='\n') as f:
                f.write(text)
    except OSError:
        for tmp_path, _ in staged:
            tmp_path.unlink()
        raise

    for tmp_path, final_path in staged:
        os.replace(tmp_path, final_path)
    return [final_path for _, final_path in staged]


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate a C++ ROS 2 skill node from a skill SCXML file'
    )
    parser.add_argument('scxml_file', help='Input skill SCXML file')
    parser.add_argument('-i', '--interfaces', nargs='+', default=[], metavar='PATH',
                        help='.srv/.msg files or directories containing them')
    parser.add_argument('-o', '--output-dir', default='.',
                        help='Output directory for generated files')
    parser.add_argument('-t', '--template-dir', default=None,
                        help='Template directory (default: bundled templates)')
    parser.add_argument('--class-name', default=None,
                        help='Generated class name (default: <Name>Skill)')
    parser.add_argument('--service-timeout-ms', type=int, default=1000,
                        help='Per-attempt service availability timeout in milliseconds')
    parser.add_argument('--service-retries', type=int, default=10,
                        help='Availability attempts before the skill terminates')
    parser.add_argument('--queue-size', type=int, default=10,
                        help='Topic subscription queue size')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s"
    )

    # Check input file exists
    if not Path(args.scxml_file).exists():
        print(f"Error: SCXML file not found: {args.scxml_file}", file=sys.stderr)
        return 1

    options = GeneratorOptions(
        template_dir=Path(args.template_dir) if args.template_dir else None,
        output_dir=Path(args.output_dir),
        class_name=args.class_name,
        service_wait_timeout_ms=args.service_timeout_ms,
        service_max_retries=args.service_retries,
        subscription_queue_size=args.queue_size,
    )
    try:
        options.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Generate code
    generator = CodeGenerator(options)
    success = generator.generate(args.scxml_file, args.interfaces)

    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
