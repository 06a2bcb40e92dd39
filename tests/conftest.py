import sys
from pathlib import Path

import pytest

# Ensure the project root is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import recorder_codec  # noqa: E402
from prospect_save import ProspectInfo, ProspectSave  # noqa: E402
from ue_properties import PropertyTag  # noqa: E402


def recorder_properties(actor_id=None, health=100):
    """Small recorder property list, optionally carrying an actor ID."""
    properties = []
    if actor_id is not None:
        properties.append(PropertyTag('IcarusActorGUID', 'IntProperty', value=actor_id))
    properties.append(PropertyTag('Health', 'IntProperty', value=health))
    properties.append(PropertyTag('bIsOpen', 'BoolProperty', value=True))
    properties.append(PropertyTag(
        'Location', 'StructProperty', struct_type='Vector',
        value={'X': 1.5, 'Y': -2.0, 'Z': 300.25}))
    properties.append(PropertyTag(
        'Stock', 'MapProperty', key_type='NameProperty', value_type='IntProperty',
        value=[('Wood', 12), ('Fiber', 3)]))
    properties.append(PropertyTag(
        'Label', 'TextProperty', value={'Flags': 0, 'HistoryType': -1, 'CultureInvariantString': 'Crate'}))
    return properties


def recorder_struct(name, properties):
    """One StateRecorderBlob element as the binary reader produces it."""
    return [
        PropertyTag('ComponentClassName', 'StrProperty', value=name),
        PropertyTag('BinaryData', 'ArrayProperty', item_type='ByteProperty',
                    enum_type=None, value=recorder_codec.encode(properties)),
    ]


def recorder_container(elements):
    return PropertyTag(
        'StateRecorderBlobs', 'ArrayProperty',
        item_type='StructProperty',
        prototype=PropertyTag('StateRecorderBlobs', 'StructProperty', struct_type='StateRecorderBlob'),
        value=elements,
    )


def prospect_data():
    """Bulk prospect data following the recorder container."""
    return [
        PropertyTag('Version', 'IntProperty', value=3),
        PropertyTag('WorldName', 'StrProperty', value='Olympus'),
        PropertyTag('Seed', 'Int64Property', value=1234567890123),
        PropertyTag('TerrainTags', 'ArrayProperty', item_type='NameProperty',
                    value=['Forest', 'Arctic']),
    ]


@pytest.fixture
def make_graph():
    """Factory: make_graph([(name, properties), ...]) -> ProspectSave."""

    def _make(recorders, data=None):
        elements = [recorder_struct(name, props) for name, props in recorders]
        info = ProspectInfo(
            ProspectID='Test_Prospect',
            ProspectDTKey='Tier1_Forest_Recon_0',
            ProspectState='Active',
            ElapsedTime=3600,
        )
        return ProspectSave(
            info=info,
            data=[recorder_container(elements)] + (prospect_data() if data is None else data),
        )

    return _make


@pytest.fixture
def sample_graph(make_graph):
    return make_graph([
        ('/Script/Icarus.DeployableRecorderComponent', recorder_properties(actor_id=42)),
        ('/Script/Icarus.PlayerStateRecorderComponent', recorder_properties(actor_id=7, health=55)),
        ('/Script/Icarus.DeployableRecorderComponent', recorder_properties(actor_id=None, health=1)),
    ])
