"""
Event model shared by the extractor, type resolver and template engine.

The extractor builds a RawEventModel; the resolver returns a TypedEventModel
in which every descriptor carries its resolved response fields.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


class FieldType(Enum):
    """ROS 2 field types as seen by the generator"""
    BOOL = "bool"
    BYTE = "byte"
    CHAR = "char"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    WSTRING = "wstring"
    # Nested messages and arrays
    COMPOUND = "compound"

    @classmethod
    def from_name(cls, type_name: str) -> Optional["FieldType"]:
        """
        Parse a declared type name

        Args:
            type_name: Type as written in a .srv/.msg file or a <data type>

        Returns:
            FieldType, or None if the name is empty or not a known type
        """
        if not type_name:
            return None
        type_name = type_name.strip()

        # Arrays: int32[], int32[3], int32[<=3]
        if '[' in type_name:
            return cls.COMPOUND
        # Nested message: geometry_msgs/Pose, Header
        if '/' in type_name:
            return cls.COMPOUND

        # Bounded strings: string<=10
        base = type_name.split('<=', 1)[0]
        for member in cls:
            if member is not cls.COMPOUND and member.value == base:
                return member
        if base[:1].isupper():
            # Same-package message reference
            return cls.COMPOUND
        return None

    @property
    def is_string(self) -> bool:
        return self is FieldType.STRING


class MessageKind(Enum):
    """Field namespace inside an interface description"""
    REQUEST = "request"
    RESPONSE = "response"
    MESSAGE = "message"


class InterfaceKind(Enum):
    SERVICE = "service"
    TOPIC = "topic"

    @property
    def message_kind(self) -> MessageKind:
        """Namespace holding the fields delivered to a response handler"""
        if self is InterfaceKind.SERVICE:
            return MessageKind.RESPONSE
        return MessageKind.MESSAGE


class TypeSource(Enum):
    """Where a resolved field type came from"""
    CATALOG = "catalog"
    DATAMODEL = "datamodel"
    DEFAULT = "default"


@dataclass(frozen=True)
class DatamodelVariable:
    """<data> declaration"""
    id: str
    type: str
    expr: str = ""

    @property
    def field_type(self) -> Optional[FieldType]:
        return FieldType.from_name(self.type)


@dataclass(frozen=True)
class InterfaceField:
    """One field of a request/response/message section"""
    name: str
    type: str

    @property
    def field_type(self) -> Optional[FieldType]:
        return FieldType.from_name(self.type)


@dataclass(frozen=True)
class AssignMapping:
    """<assign location expr> inside a response-handling block"""
    location: str
    expr: str

    @property
    def field_name(self) -> str:
        # "_res.value" -> "value"; the prefix only names the incoming response
        return self.expr.split('.', 1)[1] if '.' in self.expr else self.expr


@dataclass(frozen=True)
class ResolvedField:
    name: str
    datamodel_var: str
    field_type: FieldType
    source: TypeSource


@dataclass
class EventDescriptor:
    """One service client or topic subscriber driving generation"""
    node_name: str
    client_name: str
    interface_kind: InterfaceKind
    interface_name: str
    function_name: str
    service_type_name: str
    service_type_snake: str
    server_name: str = ""
    service_name: str = ""
    topic_name: str = ""
    response_field_map: Dict[str, str] = field(default_factory=dict)
    interface_fields: List[str] = field(default_factory=list)
    handler_targets: List[str] = field(default_factory=list)
    is_invoked: bool = False
    resolved_fields: Tuple[ResolvedField, ...] = ()
    request_fields: Tuple[str, ...] = ()

    @property
    def is_service(self) -> bool:
        return self.interface_kind is InterfaceKind.SERVICE

    @property
    def interface_id(self) -> str:
        """Compound identifier, e.g. blackboard_interfaces/GetIntBlackboard"""
        return f"{self.interface_name}/{self.service_type_name}"

    def freeze(self, resolved_fields: Tuple[ResolvedField, ...],
               request_fields: Tuple[str, ...] = ()) -> "EventDescriptor":
        """Copy of this descriptor with read-only collections and resolved fields"""
        return EventDescriptor(
            node_name=self.node_name,
            client_name=self.client_name,
            interface_kind=self.interface_kind,
            interface_name=self.interface_name,
            function_name=self.function_name,
            service_type_name=self.service_type_name,
            service_type_snake=self.service_type_snake,
            server_name=self.server_name,
            service_name=self.service_name,
            topic_name=self.topic_name,
            response_field_map=MappingProxyType(dict(self.response_field_map)),
            interface_fields=tuple(self.interface_fields),
            handler_targets=tuple(self.handler_targets),
            is_invoked=self.is_invoked,
            resolved_fields=tuple(resolved_fields),
            request_fields=tuple(request_fields),
        )


@dataclass(frozen=True)
class StateInfo:
    id: str
    parent: Optional[str] = None
    is_final: bool = False
    transitions: Tuple[Tuple[str, str], ...] = ()  # (event, target)


@dataclass
class RawEventModel:
    """Output of the statechart extractor"""
    name: str
    source: str = ""
    initial: str = ""
    datamodel: List[DatamodelVariable] = field(default_factory=list)
    states: Dict[str, StateInfo] = field(default_factory=dict)
    events: List[EventDescriptor] = field(default_factory=list)

    def variable(self, var_id: str) -> Optional[DatamodelVariable]:
        for var in self.datamodel:
            if var.id == var_id:
                return var
        return None


@dataclass(frozen=True)
class TypedEventModel:
    """Resolved model consumed once by the template engine"""
    name: str
    source: str
    initial: str
    datamodel: Tuple[DatamodelVariable, ...]
    states: Mapping[str, StateInfo]
    events: Tuple[EventDescriptor, ...]

    @property
    def services(self) -> Tuple[EventDescriptor, ...]:
        return tuple(e for e in self.events if e.is_service)

    @property
    def topics(self) -> Tuple[EventDescriptor, ...]:
        return tuple(e for e in self.events if not e.is_service)


_CASE_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake_case(name: str) -> str:
    """
    Insert '_' before every uppercase letter except the first, then lowercase

    GetIntBlackboard -> get_int_blackboard
    """
    return _CASE_BOUNDARY.sub('_', name).lower()


def split_interface_type(type_id: str) -> Tuple[str, str]:
    """
    Split a compound interface identifier at the last '/'

    blackboard_interfaces/GetIntBlackboard -> (blackboard_interfaces, GetIntBlackboard)
    blackboard_interfaces/srv/GetIntBlackboard -> (blackboard_interfaces, GetIntBlackboard)
    """
    package, _, type_name = type_id.rpartition('/')
    # ROS 2 long form pkg/srv/Type and pkg/msg/Type
    if package.endswith('/srv') or package.endswith('/msg'):
        package = package[:-4]
    return package, type_name
