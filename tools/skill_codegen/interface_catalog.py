"""
Interface Type Catalog

Loads ROS 2 interface descriptions (.srv and .msg files) and answers
field-name -> declared-type lookups for the type resolver.

Lookups that find nothing return None: missing entries are an expected case
handled by the resolver's fallback chain, not an error.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import InterfaceError
from .model import FieldType, InterfaceField, MessageKind

logger = logging.getLogger(__name__)

SERVICE_SEPARATOR = '---'
INTERFACE_SUFFIXES = ('.srv', '.msg')

# ROS 2 field names: lowercase alnum + underscore, starting with a letter
_FIELD_NAME = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')

InterfaceKey = Tuple[str, str]  # (package, type name)


def _strip_comment(line: str) -> str:
    """Drop a trailing '#' comment that is not inside a quoted default value"""
    quote = None
    for index, char in enumerate(line):
        if quote:
            if char == quote:
                quote = None
        elif char in ('"', "'"):
            quote = char
        elif char == '#':
            return line[:index]
    return line


def parse_fields(text: str, source: str = "", first_line: int = 1) -> List[InterfaceField]:
    """
    Parse the field lines of one message section

    Args:
        text: Section body (no '---' separator)
        source: File name used in error messages
        first_line: Line number of the first line of text

    Returns:
        Fields in declaration order (constants skipped)
    """
    fields = []
    for offset, raw_line in enumerate(text.splitlines()):
        line = _strip_comment(raw_line).strip()
        if not line:
            continue

        parts = line.split(None, 1)
        if len(parts) < 2:
            raise InterfaceError(f"Expected '<type> <name>', got '{line}'",
                                 source, first_line + offset)
        type_name, rest = parts

        # Constant: TYPE NAME=value
        name_part = rest.split(None, 1)[0]
        remainder = rest[len(name_part):].lstrip()
        if '=' in name_part or remainder.startswith('='):
            continue

        if not _FIELD_NAME.match(name_part):
            raise InterfaceError(f"Invalid field name '{name_part}'",
                                 source, first_line + offset)

        fields.append(InterfaceField(name=name_part, type=type_name))
    return fields


def _package_for(path: Path) -> str:
    """<pkg>/srv/Type.srv -> pkg; otherwise the parent directory name"""
    parent = path.parent
    if parent.name in ('srv', 'msg') and parent.parent.name:
        return parent.parent.name
    return parent.name


class InterfaceCatalog:
    """
    Field type lookup built from interface description files

    Request, response and message fields live in separate namespaces
    keyed by (package, type name).
    """

    def __init__(self):
        self._sections: Dict[InterfaceKey, Dict[MessageKind, Tuple[InterfaceField, ...]]] = {}
        self._sources: Dict[InterfaceKey, str] = {}

    @classmethod
    def load(cls, paths: Iterable[Union[str, Path]]) -> "InterfaceCatalog":
        """
        Load every .srv/.msg file named in paths

        Directories are searched recursively; files are read in sorted order so
        the catalog does not depend on filesystem enumeration order.
        """
        catalog = cls()
        for path in paths:
            path = Path(path)
            if path.is_dir():
                files = sorted(p for p in path.rglob('*') if p.suffix in INTERFACE_SUFFIXES)
                if not files:
                    logger.warning("No interface files found under %s", path)
                for file_path in files:
                    catalog.add_file(file_path)
            elif path.is_file():
                catalog.add_file(path)
            else:
                raise InterfaceError("Interface path not found", str(path))
        return catalog

    def add_file(self, path: Union[str, Path], package: Optional[str] = None) -> InterfaceKey:
        path = Path(path)
        if path.suffix not in INTERFACE_SUFFIXES:
            raise InterfaceError(f"Unsupported interface file type '{path.suffix}'", str(path))
        text = path.read_text(encoding='utf-8')
        return self.add_text(text, package or _package_for(path), path.stem,
                             is_service=path.suffix == '.srv', source=str(path))

    def add_text(self, text: str, package: str, type_name: str,
                 is_service: bool = True, source: str = "") -> InterfaceKey:
        """Register an interface from its description text"""
        key = (package, type_name)
        source = source or f"{package}/{type_name}"

        if is_service:
            lines = text.splitlines()
            separators = [i for i, line in enumerate(lines)
                          if _strip_comment(line).strip() == SERVICE_SEPARATOR]
            if len(separators) != 1:
                raise InterfaceError(
                    f"Service description needs exactly one '{SERVICE_SEPARATOR}' separator, "
                    f"found {len(separators)}", source)
            split_at = separators[0]
            request = parse_fields('\n'.join(lines[:split_at]), source, 1)
            response = parse_fields('\n'.join(lines[split_at + 1:]), source, split_at + 2)
            sections = {
                MessageKind.REQUEST: tuple(request),
                MessageKind.RESPONSE: tuple(response),
            }
        else:
            sections = {MessageKind.MESSAGE: tuple(parse_fields(text, source))}

        if key in self._sections:
            logger.warning("Interface %s/%s redefined by %s (was %s)",
                           package, type_name, source, self._sources[key])
        self._sections[key] = sections
        self._sources[key] = source
        logger.debug("Loaded interface %s/%s from %s", package, type_name, source)
        return key

    def fields(self, interface_name: str, type_name: str,
               kind: MessageKind = MessageKind.RESPONSE) -> Tuple[InterfaceField, ...]:
        return self._sections.get((interface_name, type_name), {}).get(kind, ())

    def lookup_type(self, interface_name: str, type_name: str, field_name: str,
                    kind: MessageKind = MessageKind.RESPONSE) -> Optional[FieldType]:
        """
        Declared type of one field

        Returns:
            FieldType, or None when the interface, section or field is unknown
        """
        for interface_field in self.fields(interface_name, type_name, kind):
            if interface_field.name == field_name:
                return interface_field.field_type
        return None

    def __contains__(self, key: InterfaceKey) -> bool:
        return tuple(key) in self._sections

    def __len__(self) -> int:
        return len(self._sections)

    def keys(self) -> List[InterfaceKey]:
        return sorted(self._sections)
