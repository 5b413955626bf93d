"""
Statechart Model Extractor

Parses a skill behavior description (SCXML with ROS 2 extension elements)
into a RawEventModel: datamodel declarations, states/transitions, and one
EventDescriptor per declared service client or topic subscriber.

Only the subset needed for code generation is interpreted:
<datamodel>/<data>, <state>/<final>, <transition>, the ROS declarations,
response-handling blocks and their <assign> operations.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

from lxml import etree

from .errors import ModelError
from .model import (
    AssignMapping,
    DatamodelVariable,
    EventDescriptor,
    InterfaceKind,
    RawEventModel,
    StateInfo,
    split_interface_type,
    to_snake_case,
)

logger = logging.getLogger(__name__)

# Anything that cannot appear in a C++ identifier
_NAME_SEPARATOR = re.compile(r'[^A-Za-z0-9]+')


def localname(elem) -> str:
    """Tag without namespace (SCXML namespace is optional in skill files)"""
    return etree.QName(elem).localname


def skill_class_name(name: str) -> str:
    """alarm_battery_low / AlarmBatteryLow / "battery check" -> ...Skill

    Raises:
        ValueError: Name has no letters to build a C++ class name from, or
            starts with a digit
    """
    parts = [p for p in _NAME_SEPARATOR.split(name) if p]
    class_name = ''.join(p[0].upper() + p[1:] for p in parts)
    if not class_name or class_name[0].isdigit():
        raise ValueError(f"Skill name '{name}' is not usable as a C++ class name")
    if not class_name.endswith('Skill'):
        class_name += 'Skill'
    return class_name


def split_ros_name(name: str):
    """'/BlackboardComponent/GetInt' -> ['BlackboardComponent', 'GetInt']"""
    return [segment for segment in name.strip().split('/') if segment]


class SkillSCXMLParser:
    """
    Skill behavior parser for code generation

    Each parse builds a fresh model; the parser keeps no state between files.
    """

    DATAMODEL = 'datamodel'
    DATA = 'data'
    STATE_TAGS = ('state', 'parallel', 'final')
    TRANSITION = 'transition'
    ASSIGN = 'assign'

    SERVICE_CLIENT = 'ros_service_client'
    TOPIC_SUBSCRIBER = 'ros_topic_subscriber'
    SERVICE_REQUEST = 'ros_service_send_request'

    # Response-handling blocks: tag -> kind of declaration they refer to
    HANDLERS = {
        'ros_service_handle_response': InterfaceKind.SERVICE,
        'ros_topic_callback': InterfaceKind.TOPIC,
    }

    def __init__(self):
        self.model: Optional[RawEventModel] = None
        self.source = ""
        self._descriptors: Dict[str, EventDescriptor] = {}

    def parse_file(self, scxml_path: Union[str, Path]) -> RawEventModel:
        """
        Parse a behavior description file

        Args:
            scxml_path: Path to the skill .scxml file

        Returns:
            RawEventModel with datamodel, states and event descriptors

        Raises:
            ModelError: Unparseable XML or missing required attribute
        """
        scxml_path = Path(scxml_path)
        source = str(scxml_path)
        try:
            tree = etree.parse(source, self._xml_parser())
        except OSError as e:
            raise ModelError(f"Cannot read behavior description: {e}", source) from e
        except etree.XMLSyntaxError as e:
            raise ModelError(f"Malformed XML: {e.msg}", source, line=e.lineno) from e
        return self._parse_root(tree.getroot(), source, scxml_path.stem)

    def parse_string(self, text: str, source: str = "<string>") -> RawEventModel:
        """Parse a behavior description held in memory"""
        try:
            root = etree.fromstring(text.encode('utf-8'), self._xml_parser())
        except etree.XMLSyntaxError as e:
            raise ModelError(f"Malformed XML: {e.msg}", source, line=e.lineno) from e
        return self._parse_root(root, source, Path(source).stem)

    @staticmethod
    def _xml_parser():
        return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)

    def _parse_root(self, root, source: str, fallback_name: str) -> RawEventModel:
        self.source = source
        self._descriptors = {}

        if localname(root) != 'scxml':
            raise ModelError(f"Root element must be <scxml>, got <{localname(root)}>",
                             source, localname(root), root.sourceline)

        name = root.get('name') or fallback_name
        self.model = RawEventModel(name=name, source=source, initial=root.get('initial', ''))
        try:
            node_name = to_snake_case(skill_class_name(name))
        except ValueError as e:
            raise ModelError(str(e), source, 'scxml', root.sourceline) from e

        self._parse_datamodel(root)
        self._parse_declarations(root, node_name)
        self._parse_states(root, None)
        self._mark_invoked_clients(root)

        # Encounter order of declarations
        self.model.events = list(self._descriptors.values())

        if not self.model.initial:
            first = next((s for s in self.model.states.values() if s.parent is None), None)
            if first is not None:
                self.model.initial = first.id

        self._check_handler_targets()
        return self.model

    def _require(self, elem, attribute: str) -> str:
        value = elem.get(attribute)
        if value is None or not value.strip():
            raise ModelError(f"Missing required attribute '{attribute}'",
                             self.source, localname(elem), elem.sourceline)
        return value.strip()

    def _parse_datamodel(self, root):
        """Top-level <datamodel> declarations, in document order"""
        for datamodel in root:
            if not isinstance(datamodel.tag, str) or localname(datamodel) != self.DATAMODEL:
                continue
            for data in datamodel:
                if not isinstance(data.tag, str) or localname(data) != self.DATA:
                    continue
                var = DatamodelVariable(
                    id=self._require(data, 'id'),
                    type=self._require(data, 'type'),
                    expr=data.get('expr', ''),
                )
                if self.model.variable(var.id) is not None:
                    logger.warning("%s: datamodel variable '%s' declared twice (line %s)",
                                   self.source, var.id, data.sourceline)
                if var.field_type is None:
                    logger.warning("%s: datamodel variable '%s' has unknown type '%s'",
                                   self.source, var.id, var.type)
                self.model.datamodel.append(var)

    def _parse_declarations(self, root, node_name: str):
        """<ros_service_client> and <ros_topic_subscriber> at document level"""
        for elem in root:
            if not isinstance(elem.tag, str):
                continue
            tag = localname(elem)
            if tag == self.SERVICE_CLIENT:
                service_name = self._require(elem, 'service_name')
                descriptor = self._new_descriptor(elem, InterfaceKind.SERVICE, service_name, node_name)
                descriptor.service_name = service_name
                descriptor.server_name = '/'.join(split_ros_name(service_name)[:-1])
            elif tag == self.TOPIC_SUBSCRIBER:
                topic = self._require(elem, 'topic')
                descriptor = self._new_descriptor(elem, InterfaceKind.TOPIC, topic, node_name)
                descriptor.topic_name = topic
            else:
                continue

            if descriptor.client_name in self._descriptors:
                raise ModelError(f"Duplicate declaration '{descriptor.client_name}'",
                                 self.source, tag, elem.sourceline)
            self._descriptors[descriptor.client_name] = descriptor

    def _new_descriptor(self, elem, kind: InterfaceKind, ros_name: str,
                        node_name: str) -> EventDescriptor:
        type_id = self._require(elem, 'type')
        interface_name, service_type_name = split_interface_type(type_id)
        if not interface_name or not service_type_name:
            raise ModelError(f"Interface type '{type_id}' must be '<package>/<TypeName>'",
                             self.source, localname(elem), elem.sourceline)

        segments = split_ros_name(ros_name)
        if not segments:
            raise ModelError(f"Invalid name '{ros_name}'",
                             self.source, localname(elem), elem.sourceline)

        return EventDescriptor(
            node_name=node_name,
            client_name=elem.get('name') or ros_name,
            interface_kind=kind,
            interface_name=interface_name,
            function_name=segments[-1],
            service_type_name=service_type_name,
            service_type_snake=to_snake_case(service_type_name),
        )

    def _parse_states(self, parent_elem, parent_id: Optional[str]):
        """Walk <state>/<parallel>/<final> recursively"""
        for state_elem in parent_elem:
            if not isinstance(state_elem.tag, str) or localname(state_elem) not in self.STATE_TAGS:
                continue
            state_id = self._require(state_elem, 'id')

            transitions = []
            for child in state_elem:
                if not isinstance(child.tag, str):
                    continue
                tag = localname(child)
                if tag == self.TRANSITION:
                    transitions.append((child.get('event', ''), child.get('target', '')))
                elif tag in self.HANDLERS:
                    self._parse_handler(child, self.HANDLERS[tag])

            self.model.states[state_id] = StateInfo(
                id=state_id,
                parent=parent_id,
                is_final=localname(state_elem) == 'final',
                transitions=tuple(transitions),
            )
            self._parse_states(state_elem, state_id)

    def _parse_handler(self, handler_elem, kind: InterfaceKind):
        """
        Response-handling block: record the assigned response fields

        A block without <assign> children still belongs to its descriptor;
        the response is simply discarded by the state machine.
        """
        tag = localname(handler_elem)
        name = self._require(handler_elem, 'name')
        target = self._require(handler_elem, 'target')

        descriptor = self._descriptors.get(name)
        if descriptor is None or descriptor.interface_kind is not kind:
            declaration = self.SERVICE_CLIENT if kind is InterfaceKind.SERVICE else self.TOPIC_SUBSCRIBER
            raise ModelError(f"'{name}' has no matching <{declaration}> declaration",
                             self.source, tag, handler_elem.sourceline)
        descriptor.handler_targets.append(target)

        for assign_elem in handler_elem.iter('{*}' + self.ASSIGN):
            mapping = AssignMapping(
                location=self._require(assign_elem, 'location'),
                expr=self._require(assign_elem, 'expr'),
            )
            if '.' not in mapping.expr:
                logger.debug("%s:%s: assign to '%s' does not read the response, skipped",
                             self.source, assign_elem.sourceline, mapping.location)
                continue

            field_name = mapping.field_name
            previous = descriptor.response_field_map.get(field_name)
            if previous is not None and previous != mapping.location:
                logger.warning("%s:%s: response field '%s' of '%s' assigned to '%s', "
                               "overriding '%s'", self.source, assign_elem.sourceline,
                               field_name, name, mapping.location, previous)
            descriptor.response_field_map[field_name] = mapping.location
            descriptor.interface_fields.append(field_name)

    def _mark_invoked_clients(self, root):
        for request in root.iter('{*}' + self.SERVICE_REQUEST):
            name = self._require(request, 'name')
            descriptor = self._descriptors.get(name)
            if descriptor is None or not descriptor.is_service:
                raise ModelError(f"Request for undeclared service client '{name}'",
                                 self.source, self.SERVICE_REQUEST, request.sourceline)
            descriptor.is_invoked = True

        for descriptor in self._descriptors.values():
            if descriptor.is_service and not descriptor.is_invoked:
                logger.warning("%s: service client '%s' is never invoked; it is still "
                               "constructed at startup", self.source, descriptor.client_name)

    def _check_handler_targets(self):
        for descriptor in self.model.events:
            for target in descriptor.handler_targets:
                if target not in self.model.states:
                    logger.warning("%s: handler for '%s' targets unknown state '%s'",
                                   self.source, descriptor.client_name, target)


def parse_file(scxml_path: Union[str, Path]) -> RawEventModel:
    return SkillSCXMLParser().parse_file(scxml_path)
