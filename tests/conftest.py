"""Shared pytest fixtures for skill-codegen tests."""

from pathlib import Path
from textwrap import dedent

import pytest

from skill_codegen.interface_catalog import InterfaceCatalog
from skill_codegen.scxml_parser import SkillSCXMLParser
from skill_codegen.type_resolver import TypeResolver


BLACKBOARD_SKILL = dedent("""
    <scxml version="1.0" name="BlackboardCheck" initial="idle"
           xmlns="http://www.w3.org/2005/07/scxml">
      <datamodel>
        <data id="m_value" type="int32" expr="0"/>
        <data id="m_result" type="bool" expr="false"/>
      </datamodel>
      <ros_service_client name="get_int" service_name="/BlackboardComponent/GetInt"
                          type="blackboard_interfaces/GetIntBlackboard"/>
      <state id="idle">
        <transition event="CMD_TICK" target="wait">
          <ros_service_send_request name="get_int">
            <field name="field_name" expr="'counter'"/>
          </ros_service_send_request>
        </transition>
      </state>
      <state id="wait">
        <ros_service_handle_response name="get_int" target="done">
          <assign location="m_value" expr="_res.value"/>
          <assign location="m_result" expr="_res.is_ok"/>
        </ros_service_handle_response>
      </state>
      <final id="done"/>
    </scxml>
""").strip()

EMPTY_SKILL = dedent("""
    <scxml version="1.0" name="Idle" initial="idle">
      <datamodel>
        <data id="m_count" type="int32" expr="0"/>
      </datamodel>
      <state id="idle">
        <transition event="CMD_HALT" target="done"/>
      </state>
      <final id="done"/>
    </scxml>
""").strip()

GET_INT_SRV = dedent("""
    # Reads an integer from the blackboard
    string field_name
    ---
    int32 value
    bool is_ok
""").strip()

BATTERY_MSG = dedent("""
    float32 percentage
    string status
    uint8 POWER_SUPPLY_STATUS_CHARGING=1
""").strip()


def write_interface(root: Path, package: str, name: str, text: str) -> Path:
    subfolder = 'srv' if name.endswith('.srv') else 'msg'
    path = root / package / subfolder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def interfaces_dir(tmp_path: Path) -> Path:
    """Interface tree with blackboard_interfaces/srv and battery_msgs/msg"""
    root = tmp_path / "interfaces"
    write_interface(root, "blackboard_interfaces", "GetIntBlackboard.srv", GET_INT_SRV)
    write_interface(root, "battery_msgs", "BatteryLevel.msg", BATTERY_MSG)
    return root


@pytest.fixture
def catalog(interfaces_dir: Path) -> InterfaceCatalog:
    return InterfaceCatalog.load([interfaces_dir])


@pytest.fixture
def write_skill(tmp_path: Path):
    """Write an SCXML document and return its path"""
    def _write(text: str, name: str = "skill.scxml") -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write


@pytest.fixture
def parse_skill():
    def _parse(text: str, source: str = "skill.scxml"):
        return SkillSCXMLParser().parse_string(text, source)
    return _parse


@pytest.fixture
def typed_model(parse_skill, catalog):
    """Resolve a skill document against the fixture catalog"""
    def _typed(text: str = BLACKBOARD_SKILL):
        return TypeResolver(catalog).resolve(parse_skill(text))
    return _typed
