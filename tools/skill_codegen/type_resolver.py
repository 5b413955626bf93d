"""
Type Resolver

Annotates every response field of every EventDescriptor with a FieldType.

Resolution order for a field:
    1. Interface catalog entry for (package, type name, field)
    2. Declared type of the datamodel variable "m_" + field
    3. string (with a warning)
"""

import logging
from types import MappingProxyType
from typing import List

from .interface_catalog import InterfaceCatalog
from .model import (
    EventDescriptor,
    FieldType,
    MessageKind,
    RawEventModel,
    ResolvedField,
    TypedEventModel,
    TypeSource,
)

logger = logging.getLogger(__name__)

DATAMODEL_PREFIX = 'm_'


def fallback_variable(field_name: str) -> str:
    return DATAMODEL_PREFIX + field_name


class TypeResolver:
    """Resolves raw event models against one interface catalog"""

    def __init__(self, catalog: InterfaceCatalog):
        self.catalog = catalog

    def resolve(self, raw: RawEventModel) -> TypedEventModel:
        events = tuple(self._resolve_descriptor(raw, descriptor) for descriptor in raw.events)
        return TypedEventModel(
            name=raw.name,
            source=raw.source,
            initial=raw.initial,
            datamodel=tuple(raw.datamodel),
            states=MappingProxyType(dict(raw.states)),
            events=events,
        )

    def _resolve_descriptor(self, raw: RawEventModel,
                            descriptor: EventDescriptor) -> EventDescriptor:
        if (descriptor.interface_name, descriptor.service_type_name) not in self.catalog:
            logger.warning("%s: interface %s (used by '%s') not found in catalog",
                           raw.source, descriptor.interface_id, descriptor.client_name)

        resolved: List[ResolvedField] = []
        for field_name in descriptor.interface_fields:
            datamodel_var = descriptor.response_field_map.get(field_name,
                                                              fallback_variable(field_name))
            field_type, source = self._resolve_type(raw, descriptor, field_name)
            resolved.append(ResolvedField(field_name, datamodel_var, field_type, source))

        request_fields = ()
        if descriptor.is_service:
            request_fields = tuple(f.name for f in self.catalog.fields(
                descriptor.interface_name, descriptor.service_type_name, MessageKind.REQUEST))
        return descriptor.freeze(tuple(resolved), request_fields)

    def _resolve_type(self, raw: RawEventModel, descriptor: EventDescriptor, field_name: str):
        field_type = self.catalog.lookup_type(
            descriptor.interface_name,
            descriptor.service_type_name,
            field_name,
            descriptor.interface_kind.message_kind,
        )
        if field_type is not None:
            return field_type, TypeSource.CATALOG

        variable = raw.variable(fallback_variable(field_name))
        if variable is not None and variable.field_type is not None:
            logger.debug("%s: type of '%s.%s' taken from datamodel variable '%s'",
                         raw.source, descriptor.client_name, field_name, variable.id)
            return variable.field_type, TypeSource.DATAMODEL

        logger.warning("%s: cannot resolve type of field '%s' of %s (%s), assuming string",
                       raw.source, field_name, descriptor.interface_id, descriptor.client_name)
        return FieldType.STRING, TypeSource.DEFAULT


def resolve(raw: RawEventModel, catalog: InterfaceCatalog) -> TypedEventModel:
    return TypeResolver(catalog).resolve(raw)
