import json
import logging
from pathlib import Path

import pytest

from converter_errors import (
    DataReadError,
    InfoReadError,
    MalformedRecorderFile,
    MissingInfo,
    RecorderReadError,
    SaveWriteError,
)
from prospect_combiner import combine, read_recorder, recorder_sort_key, save_prospect
from prospect_splitter import split
from recorder_codec import decode
from ue_properties import find_property


def write_recorder(path, text):
    path.write_text(text, encoding='utf-8')
    return path


def test_combine_rebuilds_split_graph(sample_graph, tmp_path):
    parts = tmp_path / 'parts'
    split(sample_graph, parts)
    combined = combine(parts)
    assert combined.info == sample_graph.info
    assert combined.data == sample_graph.data


def test_recorder_container_is_synthesized(sample_graph, tmp_path):
    parts = tmp_path / 'parts'
    split(sample_graph, parts)
    container = combine(parts).data[0]
    assert container.name == 'StateRecorderBlobs'
    assert container.type_name == 'ArrayProperty'
    assert container.item_type == 'StructProperty'
    assert container.prototype.struct_type == 'StateRecorderBlob'
    assert [element[0].name for element in container.value] == ['ComponentClassName'] * 3
    assert [element[1].name for element in container.value] == ['BinaryData'] * 3


def test_recorders_follow_file_prefix_order(sample_graph, tmp_path):
    parts = tmp_path / 'parts'
    split(sample_graph, parts, use_actor_id=True)
    container = combine(parts).data[0]
    health = [read_health(element) for element in container.value]
    # actor IDs 7 and 42 first, then the recorder without an actor ID
    assert health == [55, 100, 1]


def read_health(element):
    return find_property(decode(element[1].value), 'Health').value


def test_sort_key_groups():
    names = ['_3_A.json', 'notes.json', '10_B.json', '_1_C.json', '9_D.json']
    ordered = sorted((Path(n) for n in names), key=recorder_sort_key)
    assert [p.name for p in ordered] == ['9_D.json', '10_B.json', '_1_C.json', '_3_A.json', 'notes.json']


def test_combine_logs_progress(sample_graph, tmp_path, caplog):
    caplog.set_level(logging.INFO)
    parts = tmp_path / 'parts'
    split(sample_graph, parts)
    caplog.clear()
    combine(parts)
    assert "Reading ProspectInfo..." in caplog.text
    assert "Reading 3 Recorders..." in caplog.text


# =============================================================================
# Recorder file reader
# =============================================================================

def test_reader_takes_first_name_and_ignores_other_keys(tmp_path):
    path = write_recorder(tmp_path / 'r.json', json.dumps({
        'Comment': 'edited by hand',
        'Name': 'First',
    })[:-1] + ', "Name": "Second", "Data": [{"Name": "Health", "Type": "IntProperty", "Value": 9}]}')
    recorder = read_recorder(path)
    assert recorder.name == 'First'
    assert [p.value for p in recorder.properties] == [9]


def test_reader_stops_at_data(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Data": [], "Name": "Late"}')
    with pytest.raises(MalformedRecorderFile):
        read_recorder(path)


def test_reader_without_data_gives_empty_recorder(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Name": "Empty"}')
    assert read_recorder(path).properties == []


def test_reader_skips_non_object_entries(tmp_path):
    path = write_recorder(tmp_path / 'r.json',
                          '{"Name": "R", "Data": [1, "x", {"Name": "A", "Type": "IntProperty", "Value": 1}]}')
    assert [p.name for p in read_recorder(path).properties] == ['A']


def test_missing_name_is_malformed(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Data": []}')
    with pytest.raises(MalformedRecorderFile) as excinfo:
        read_recorder(path)
    assert isinstance(excinfo.value, RecorderReadError)
    assert 'r.json' in str(excinfo.value)


def test_invalid_recorder_json(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Name": ')
    with pytest.raises(RecorderReadError):
        read_recorder(path)


def test_invalid_recorder_property(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Name": "R", "Data": [{"Name": "A", "Type": "Nope"}]}')
    with pytest.raises(RecorderReadError, match="unknown Type"):
        read_recorder(path)


# =============================================================================
# Missing or broken parts
# =============================================================================

@pytest.fixture
def parts(sample_graph, tmp_path):
    parts_dir = tmp_path / 'parts'
    split(sample_graph, parts_dir)
    return parts_dir


def test_missing_info(parts):
    (parts / 'ProspectInfo.json').unlink()
    with pytest.raises(MissingInfo) as excinfo:
        combine(parts)
    assert isinstance(excinfo.value, InfoReadError)


def test_info_not_an_object(parts):
    (parts / 'ProspectInfo.json').write_text('[]', encoding='utf-8')
    with pytest.raises(MissingInfo):
        combine(parts)


def test_missing_data(parts):
    (parts / 'ProspectData.json').unlink()
    with pytest.raises(DataReadError):
        combine(parts)


def test_data_not_an_array(parts):
    (parts / 'ProspectData.json').write_text('{}', encoding='utf-8')
    with pytest.raises(DataReadError, match="JSON array"):
        combine(parts)


def test_missing_recorders_directory(parts):
    for path in (parts / 'Recorders').iterdir():
        path.unlink()
    (parts / 'Recorders').rmdir()
    with pytest.raises(RecorderReadError):
        combine(parts)


def test_empty_prospect_parts_cannot_be_packed(make_graph, tmp_path):
    parts_dir = tmp_path / 'parts'
    split(make_graph([], data=[]), parts_dir)
    with pytest.raises(DataReadError):
        combine(parts_dir)


def test_unencodable_recorder(parts):
    path = next((parts / 'Recorders').iterdir())
    write_recorder(path, json.dumps({
        'Name': 'R',
        'Data': [{'Name': 'Small', 'Type': 'Int8Property', 'Value': 1000}],
    }))
    with pytest.raises(RecorderReadError, match="Error encoding recorder 'R'"):
        combine(parts)


def test_save_prospect_error(sample_graph, tmp_path):
    with pytest.raises(SaveWriteError):
        save_prospect(sample_graph, tmp_path)


def test_save_prospect_writes_file(sample_graph, tmp_path):
    path = tmp_path / 'Prospect.json'
    save_prospect(sample_graph, path)
    document = json.loads(path.read_text(encoding='utf-8'))
    assert document['ProspectInfo']['ProspectID'] == 'Test_Prospect'


def test_numeric_name_is_taken_as_text(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Name": 12, "Data": []}')
    assert read_recorder(path).name == '12'


def test_non_scalar_name_is_malformed(tmp_path):
    path = write_recorder(tmp_path / 'r.json', '{"Name": ["x"], "Data": []}')
    with pytest.raises(MalformedRecorderFile):
        read_recorder(path)


@pytest.mark.parametrize('bad_property', [
    {'Name': 'Assets', 'Type': 'ArrayProperty', 'ItemType': 'SoftObjectProperty', 'Value': ['oops']},
    {'Name': 'Bounds', 'Type': 'StructProperty', 'StructType': 'Box', 'Value': {'Min': [1, 2, 3]}},
])
def test_hand_edited_layout_errors_name_the_stage(parts, bad_property):
    path = next((parts / 'Recorders').iterdir())
    write_recorder(path, json.dumps({'Name': 'R', 'Data': [bad_property]}))
    with pytest.raises(RecorderReadError) as excinfo:
        combine(parts)
    assert excinfo.value.stage == "recorder read"
    assert path.name in str(excinfo.value)
