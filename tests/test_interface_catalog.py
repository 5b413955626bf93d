"""Tests for the interface type catalog."""

from pathlib import Path
from textwrap import dedent

import pytest

from skill_codegen.errors import InterfaceError
from skill_codegen.interface_catalog import InterfaceCatalog, parse_fields
from skill_codegen.model import FieldType, MessageKind


class TestParseFields:
    """Tests for field line parsing."""

    def test_types_and_order(self) -> None:
        fields = parse_fields("int32 value\nbool is_ok\nstring<=10 label\n")

        assert [(f.name, f.type) for f in fields] == [
            ("value", "int32"), ("is_ok", "bool"), ("label", "string<=10"),
        ]
        assert fields[2].field_type is FieldType.STRING

    def test_comments_constants_and_defaults(self) -> None:
        fields = parse_fields(dedent("""
            # header comment
            int8 MODE_AUTO=1
            int8 MODE_MANUAL = 2
            string name "a#b"  # trailing comment
            float64 speed 0.5
        """))

        assert [f.name for f in fields] == ["name", "speed"]

    def test_missing_name_is_fatal(self) -> None:
        with pytest.raises(InterfaceError) as excinfo:
            parse_fields("int32 value\nbool\n", source="Bad.srv")

        assert excinfo.value.line == 2
        assert "Bad.srv:2" in str(excinfo.value)


class TestInterfaceCatalog:
    """Tests for InterfaceCatalog."""

    def test_load_directory(self, catalog: InterfaceCatalog) -> None:
        assert ("blackboard_interfaces", "GetIntBlackboard") in catalog
        assert ("battery_msgs", "BatteryLevel") in catalog
        assert len(catalog) == 2
        assert catalog.keys() == [
            ("battery_msgs", "BatteryLevel"), ("blackboard_interfaces", "GetIntBlackboard"),
        ]

    def test_request_and_response_namespaces(self, catalog: InterfaceCatalog) -> None:
        lookup = catalog.lookup_type

        assert lookup("blackboard_interfaces", "GetIntBlackboard", "value") is FieldType.INT32
        assert lookup("blackboard_interfaces", "GetIntBlackboard", "is_ok") is FieldType.BOOL
        assert lookup("blackboard_interfaces", "GetIntBlackboard", "field_name") is None
        assert lookup("blackboard_interfaces", "GetIntBlackboard", "field_name",
                      MessageKind.REQUEST) is FieldType.STRING

    def test_message_fields(self, catalog: InterfaceCatalog) -> None:
        fields = catalog.fields("battery_msgs", "BatteryLevel", MessageKind.MESSAGE)

        assert [f.name for f in fields] == ["percentage", "status"]
        assert catalog.lookup_type("battery_msgs", "BatteryLevel", "percentage",
                                   MessageKind.MESSAGE) is FieldType.FLOAT32

    def test_unknown_lookups_return_none(self, catalog: InterfaceCatalog) -> None:
        assert catalog.lookup_type("nope", "Missing", "value") is None
        assert catalog.lookup_type("blackboard_interfaces", "GetIntBlackboard", "missing") is None
        # Function name is not the service type name
        assert catalog.lookup_type("blackboard_interfaces", "GetInt", "value") is None

    def test_load_single_file_outside_ros_layout(self, tmp_path: Path) -> None:
        path = tmp_path / "my_pkg" / "SetFlag.srv"
        path.parent.mkdir()
        path.write_text("bool flag\n---\nbool success\nstring message\n")

        catalog = InterfaceCatalog.load([path])

        assert catalog.lookup_type("my_pkg", "SetFlag", "message") is FieldType.STRING

    def test_service_needs_one_separator(self, tmp_path: Path) -> None:
        path = tmp_path / "pkg" / "srv" / "Broken.srv"
        path.parent.mkdir(parents=True)
        path.write_text("int32 a\nint32 b\n")

        with pytest.raises(InterfaceError, match="separator"):
            InterfaceCatalog.load([path])

    def test_missing_path_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(InterfaceError, match="not found"):
            InterfaceCatalog.load([tmp_path / "does-not-exist"])

    def test_compound_and_array_types(self) -> None:
        catalog = InterfaceCatalog()
        catalog.add_text("geometry_msgs/Pose pose\nint32[] values\nHeader header\n",
                         "nav", "Goal", is_service=False)

        for name in ("pose", "values", "header"):
            assert catalog.lookup_type("nav", "Goal", name, MessageKind.MESSAGE) is FieldType.COMPOUND
