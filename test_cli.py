"""
Tests for the command-line interface.
"""

import json
import sys

import pytest

from cronrunner import cli
from cronrunner.config import ENV_OVERRIDES
from cronrunner.errors import CrontabError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + ['CRONRUNNER_CONFIG_PATH', 'CRONRUNNER_LOG_LEVEL', 'CRONRUNNER_LOG_FILE']:
        monkeypatch.delenv(name, raising=False)


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, 'argv', ['cronrunner', *argv])
    cli.main()


class TestCli:
    """Tests for cronrunner sub-commands."""

    def test_check_lists_jobs(self, tmp_path, monkeypatch, capsys):
        crontab = tmp_path / "crontab"
        crontab.write_text("0 2 * * * /bin/backup.sh --full\n# skipped\n*/5 * * * * curl\n")

        run_cli(monkeypatch, 'check', '--crontab', str(crontab))

        out = capsys.readouterr().out
        assert "(2)" in out
        assert "0 0 2 * * *" in out
        assert "Command: /bin/backup.sh" in out
        assert "Args:    --full" in out
        assert "Command: curl" in out

    def test_check_missing_crontab_exits(self, tmp_path, monkeypatch):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, 'check', '--crontab', str(tmp_path / "missing"))
        assert exc.value.code == 1

    def test_show_config(self, monkeypatch, capsys):
        run_cli(monkeypatch, 'show-config', '--crontab', '/srv/crontab', '--exec', 'go')

        data = json.loads(capsys.readouterr().out)
        assert data['crontab'] == '/srv/crontab'
        assert data['executer'] == 'go'

    def test_start_with_missing_crontab_exits(self, tmp_path, monkeypatch):
        monkeypatch.setattr(cli.signal, "signal", lambda *args: None)
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, 'start', '--crontab', str(tmp_path / "missing"))
        assert exc.value.code == 1

    def test_fatal_reload_error_exits_without_waiting(self, tmp_path, monkeypatch):
        calls = []

        class FakeController:
            def __init__(self, config):
                pass

            def reload(self):
                calls.append('reload')

            def shutdown(self):
                calls.append('shutdown')

        class FakeWatcher:
            def __init__(self, path, on_change, debounce):
                self.fatal_error = CrontabError("Cannot read crontab")

            def start(self):
                pass

            def wait(self, timeout=None):
                return True

            def stop(self):
                calls.append('stop')

        def fake_exit(code):
            calls.append(('exit', code))
            raise SystemExit(code)

        monkeypatch.setattr(cli, "ReloadController", FakeController)
        monkeypatch.setattr(cli, "FileWatcher", FakeWatcher)
        monkeypatch.setattr(cli.signal, "signal", lambda *args: None)
        monkeypatch.setattr(cli.logging, "shutdown", lambda: calls.append('logging'))
        monkeypatch.setattr(cli.os, "_exit", fake_exit)

        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, 'start', '--crontab', str(tmp_path / "crontab"))

        assert exc.value.code == 1
        assert calls == ['reload', 'stop', 'shutdown', 'logging', ('exit', 1)]

    def test_no_command_prints_help(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch)
        assert exc.value.code == 1
        assert "usage" in capsys.readouterr().out

    def test_version(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, '--version')
        assert exc.value.code == 0
        assert "0.1.0" in capsys.readouterr().out
