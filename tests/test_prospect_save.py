import base64
import io
import json
import zlib

import pytest

from prospect_save import (
    AssociatedMember,
    ProspectFormatError,
    ProspectInfo,
    ProspectSave,
    decode_blob,
    encode_blob,
    load_graph,
    save_graph,
)


def saved_document(graph):
    stream = io.BytesIO()
    graph.save(stream)
    return json.loads(stream.getvalue().decode('utf-8'))


def load_document(document):
    return ProspectSave.load(io.BytesIO(json.dumps(document).encode('utf-8')))


def test_save_then_load_preserves_graph(sample_graph):
    stream = io.BytesIO()
    sample_graph.save(stream)
    stream.seek(0)
    loaded = ProspectSave.load(stream)
    assert loaded.info == sample_graph.info
    assert loaded.data == sample_graph.data


def test_container_layout(sample_graph):
    document = saved_document(sample_graph)
    assert list(document) == ['ProspectInfo', 'ProspectBlob']
    assert document['ProspectInfo']['ProspectID'] == 'Test_Prospect'
    assert 'LobbyName' not in document['ProspectInfo']
    blob = document['ProspectBlob']
    compressed = base64.b64decode(blob['BinaryBlob'])
    assert blob['TotalLength'] == len(compressed)
    assert blob['DataLength'] == len(zlib.decompress(compressed))


def test_info_keeps_unknown_keys_and_members():
    info = ProspectInfo.from_json({
        'ProspectID': 'P1',
        'AssociatedMembers': [{'AccountName': 'Alice', 'ChrSlot': 2, 'Bonus': 'x'}],
        'FutureField': [1, 2],
    })
    assert info.AssociatedMembers == [AssociatedMember(AccountName='Alice', ChrSlot=2, extra={'Bonus': 'x'})]
    assert info.extra == {'FutureField': [1, 2]}
    assert info.to_json() == {
        'ProspectID': 'P1',
        'AssociatedMembers': [{'AccountName': 'Alice', 'ChrSlot': 2, 'Bonus': 'x'}],
        'FutureField': [1, 2],
    }


def test_info_must_be_object():
    with pytest.raises(ProspectFormatError, match="JSON object"):
        ProspectInfo.from_json(['not', 'an', 'object'])


def test_blob_roundtrip():
    assert decode_blob(encode_blob(b'payload')) == b'payload'


@pytest.mark.parametrize('key, value, message', [
    ('Hash', '0' * 40, 'Hash'),
    ('DataLength', 1, 'DataLength'),
    ('TotalLength', 1, 'TotalLength'),
    ('BinaryBlob', '!!!', 'cannot be decoded'),
    ('BinaryBlob', base64.b64encode(b'not zlib').decode('ascii'), 'cannot be decoded'),
])
def test_blob_corruption_is_detected(key, value, message):
    blob = encode_blob(b'payload')
    blob[key] = value
    with pytest.raises(ProspectFormatError, match=message):
        decode_blob(blob)


def test_missing_sections(sample_graph):
    document = saved_document(sample_graph)
    del document['ProspectBlob']
    with pytest.raises(ProspectFormatError, match="missing"):
        load_document(document)


def test_not_json():
    with pytest.raises(ProspectFormatError, match="not valid JSON"):
        ProspectSave.load(io.BytesIO(b'garbage{'))


def test_malformed_property_stream():
    document = {'ProspectInfo': {}, 'ProspectBlob': encode_blob(b'\x01\x02\x03')}
    with pytest.raises(ProspectFormatError, match="data is malformed"):
        load_document(document)


def test_graph_helpers(sample_graph):
    stream = io.BytesIO()
    save_graph(sample_graph, stream)
    stream.seek(0)
    assert load_graph(stream).data == sample_graph.data
