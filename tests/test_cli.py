import json

from cli import ProgressReporter, build_parser, main
from config import ConfigStore, Profile
from pipeline import PipelineEvent


def test_list_profiles_prints_each_profile(tmp_path, capsys):
    workspace = tmp_path / 'workspace'
    config = ConfigStore.load(workspace)
    config.add_profile(Profile('vanilla', '/games/vanilla', '1.20.1'))
    config.add_profile(Profile('modded', '/games/modded', '1.12.2', '14.23.5.2847'))

    assert main(['-w', str(workspace), 'list-profiles']) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        'vanilla [/games/vanilla][version: 1.20.1, forge: no]',
        'modded [/games/modded][version: 1.12.2, forge: 14.23.5.2847]',
    ]


def test_start_with_unknown_profile_fails(tmp_path):
    assert main(['-w', str(tmp_path), 'start', 'missing']) == 1
    saved = json.loads((tmp_path / 'config.json').read_text(encoding='utf-8'))
    assert saved['profiles'] == {}


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert 'usage: emo' in capsys.readouterr().out


def test_init_defaults():
    args = build_parser().parse_args(['init', 'vanilla'])
    assert args.minecraft == 'latest'
    assert args.forge is None
    assert args.mode == 'client'


def test_corrupt_config_is_reported_without_traceback(tmp_path, caplog):
    (tmp_path / 'config.json').write_text('not json', encoding='utf-8')
    assert main(['-w', str(tmp_path), 'list-profiles']) == 1
    assert 'list-profiles failed: Corrupt config file' in caplog.text
    assert 'Traceback' not in caplog.text


def test_progress_bar_follows_each_fanned_out_step():
    reporter = ProgressReporter()

    reporter(PipelineEvent('step', 0, 3, 'Fetching libraries'))
    reporter(PipelineEvent('item', 0, 3, 'Fetching libraries', completed=1, count=2))
    first_bar = reporter._bar
    assert first_bar is not None and first_bar.n == 1
    reporter(PipelineEvent('item', 0, 3, 'Fetching libraries', completed=2, count=2))
    assert reporter._bar is None

    reporter(PipelineEvent('step', 1, 3, 'Fetching assets'))
    reporter(PipelineEvent('item', 1, 3, 'Fetching assets', completed=1, count=3))
    assert reporter._bar is not first_bar
    assert reporter._bar.total == 3

    # An unfinished bar is closed by the next step or by close()
    reporter(PipelineEvent('step', 2, 3, 'Saving profile'))
    assert reporter._bar is None

    reporter(PipelineEvent('item', 2, 3, 'Saving profile', completed=1, count=5))
    reporter.close()
    assert reporter._bar is None
