"""
Tests for the TreasureHunt facade and the command-line interface.
"""

import sys

import pytest

from treasure_hunt import cli
from treasure_hunt.config_manager import ConfigManager
from treasure_hunt.hunt import TreasureHunt
from treasure_hunt.records import TreasureRecord
from treasure_hunt.workflow import WorkflowState


def record(index, label):
    return TreasureRecord(
        image_name=f'clue_{index}_{label.lower()}',
        file_name=f'{label}.png',
        clue_index=index,
        clue_name=label,
    )


class TestTreasureHunt:
    """Wiring and maintenance operations."""

    def test_initialize_project(self, tmp_path):
        hunt = TreasureHunt.initialize(tmp_path, 'https://hunt.example.com')
        assert hunt.config_manager.config_path == tmp_path / 'config' / ConfigManager.DEFAULT_CONFIG_NAME
        assert hunt.client.configured
        assert hunt.config.publisher.local_path == tmp_path / 'Web-config.JSON'

    def test_new_workflow_shares_services(self, hunt_config):
        hunt = TreasureHunt(config=hunt_config)
        workflow = hunt.new_workflow(max_treasures=3)
        assert workflow.state == WorkflowState.SETUP
        assert workflow.max_treasures == 3
        assert workflow.publisher is hunt.publisher
        assert workflow.validator is hunt.validator

    def test_list_and_republish(self, hunt_config):
        hunt = TreasureHunt(config=hunt_config)
        assert hunt.list_treasures() == []
        with pytest.raises(FileNotFoundError):
            hunt.republish()

        hunt.republish([record(2, 'Tree'), record(0, 'Gate')])
        assert [r.clue_index for r in hunt.list_treasures()] == [0, 2]

        result = hunt.republish()
        assert result.succeeded
        assert result.document.total_treasures == 2

    def test_validate_missing_image(self, hunt_config, tmp_path):
        hunt = TreasureHunt(config=hunt_config)
        with pytest.raises(FileNotFoundError):
            hunt.validate_image(tmp_path / 'missing.png')


class TestCli:
    """Command dispatch."""

    def run(self, monkeypatch, *argv):
        monkeypatch.setattr(sys, 'argv', ['treasure-hunt', *argv])
        cli.main()

    def test_init_and_list(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        self.run(monkeypatch, 'init', '--directory', str(tmp_path))
        assert (tmp_path / 'config' / ConfigManager.DEFAULT_CONFIG_NAME).exists()

        config_path = str(tmp_path / 'config' / ConfigManager.DEFAULT_CONFIG_NAME)
        self.run(monkeypatch, 'list', '--config', config_path)
        assert 'No treasures published' in capsys.readouterr().out

    def test_unknown_command(self, monkeypatch):
        with pytest.raises(SystemExit):
            self.run(monkeypatch, 'bogus')

    def test_publish_without_document(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit):
            self.run(monkeypatch, 'publish', '--config', str(tmp_path / 'none.yaml'))
        assert 'No configuration published yet' in capsys.readouterr().out

    def test_list_with_damaged_document(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        self.run(monkeypatch, 'init', '--directory', str(tmp_path))
        (tmp_path / 'Web-config.JSON').write_text('{"images": [')
        capsys.readouterr()

        config_path = str(tmp_path / 'config' / ConfigManager.DEFAULT_CONFIG_NAME)
        with pytest.raises(SystemExit):
            self.run(monkeypatch, 'list', '--config', config_path)
        assert 'unreadable' in capsys.readouterr().out
