import pytest

from prospect_combiner import combine, save_prospect
from prospect_splitter import load_prospect, split


@pytest.mark.parametrize('use_actor_id', [False, True])
def test_unpack_pack_unpack(sample_graph, tmp_path, use_actor_id):
    original = tmp_path / 'Original.json'
    save_prospect(sample_graph, original)

    first_parts = tmp_path / 'first'
    first = split(load_prospect(original), first_parts, use_actor_id)

    rebuilt = tmp_path / 'Rebuilt.json'
    save_prospect(combine(first_parts), rebuilt)

    second_parts = tmp_path / 'second'
    second = split(load_prospect(rebuilt), second_parts, use_actor_id)

    assert {p.name: p.read_bytes() for p in second} == {p.name: p.read_bytes() for p in first}
    for name in ('ProspectInfo.json', 'ProspectData.json'):
        assert (second_parts / name).read_bytes() == (first_parts / name).read_bytes()


def test_index_naming_rebuilds_identical_prospect(sample_graph, tmp_path):
    original = tmp_path / 'Original.json'
    save_prospect(sample_graph, original)

    parts = tmp_path / 'parts'
    split(load_prospect(original), parts)
    rebuilt = tmp_path / 'Rebuilt.json'
    save_prospect(combine(parts), rebuilt)

    assert rebuilt.read_bytes() == original.read_bytes()


def test_hand_edit_survives_pack(sample_graph, tmp_path):
    parts = tmp_path / 'parts'
    written = split(sample_graph, parts)
    text = written[0].read_text(encoding='utf-8')
    written[0].write_text(text.replace('"Value": 100', '"Value": 250'), encoding='utf-8')

    rebuilt = tmp_path / 'Rebuilt.json'
    save_prospect(combine(parts), rebuilt)

    reparsed = tmp_path / 'reparsed'
    again = split(load_prospect(rebuilt), reparsed)
    assert '"Value": 250' in again[0].read_text(encoding='utf-8')
