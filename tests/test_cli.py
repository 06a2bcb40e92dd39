import pytest

from prospect_combiner import save_prospect
from prospect_convert import main


@pytest.fixture
def prospect_file(sample_graph, tmp_path):
    path = tmp_path / 'Prospect.json'
    save_prospect(sample_graph, path)
    return path


def test_no_arguments_prints_usage(capsys):
    assert main([]) == 0
    assert 'usage:' in capsys.readouterr().out


def test_unknown_action_is_rejected(capsys):
    assert main(['explode', 'a', 'b']) == 1
    assert 'invalid choice' in capsys.readouterr().out


def test_unknown_flag_is_rejected():
    assert main(['unpack', 'a', 'b', '--bogus']) == 1


@pytest.mark.parametrize('argv', [['unpack', 'a'], ['pack', 'a', 'b', 'c'], ['-v']])
def test_wrong_argument_count_prints_usage(argv, capsys):
    assert main(argv) == 0
    assert 'usage:' in capsys.readouterr().out


def test_unpack_then_pack(prospect_file, tmp_path, capsys):
    parts = tmp_path / 'parts'
    assert main(['UNPACK', str(prospect_file), str(parts)]) == 0
    assert (parts / 'Recorders').is_dir()
    assert 'SUCCESS' in capsys.readouterr().out

    rebuilt = tmp_path / 'Rebuilt.json'
    assert main(['Pack', str(rebuilt), str(parts)]) == 0
    assert rebuilt.exists()


def test_unpack_by_actor_id(prospect_file, tmp_path):
    parts = tmp_path / 'parts'
    assert main(['unpack', str(prospect_file), str(parts), '--actor-id', '-v']) == 0
    assert (parts / 'Recorders' / '0000042_Icarus.DeployableRecorderComponent.json').exists()


def test_unpack_missing_input_fails(tmp_path, capsys):
    assert main(['unpack', str(tmp_path / 'missing.json'), str(tmp_path / 'parts')]) == 1
    out = capsys.readouterr().out
    assert 'ERROR' in out
    assert '[load]' in out


def test_pack_missing_parts_fails(tmp_path, capsys):
    assert main(['pack', str(tmp_path / 'out.json'), str(tmp_path / 'nothing')]) == 1
    assert '[info read]' in capsys.readouterr().out


def test_pack_stops_before_writing_on_nameless_recorder(prospect_file, tmp_path, capsys):
    parts = tmp_path / 'parts'
    assert main(['unpack', str(prospect_file), str(parts)]) == 0
    recorder = next((parts / 'Recorders').iterdir())
    recorder.write_text('{"Data": []}', encoding='utf-8')
    capsys.readouterr()

    rebuilt = tmp_path / 'Rebuilt.json'
    assert main(['pack', str(rebuilt), str(parts)]) == 1
    assert '[recorder read]' in capsys.readouterr().out
    assert not rebuilt.exists()
