"""Tests for the ``bash-ast`` command."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from bash_ast.cli import main


def write(tmp_path: Path, name: str, content: str) -> str:
    path = tmp_path / name
    path.write_text(content)
    return str(path)


class TestParseCommand:
    """Verify script to JSON output."""

    def test_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main([write(tmp_path, 'script.sh', 'echo hi\n')])
        assert json.loads(capsys.readouterr().out) == {
            'type': 'simple',
            'line': 1,
            'words': [{'word': 'echo', 'flags': 0}, {'word': 'hi', 'flags': 0}],
            'redirects': [],
        }

    def test_stdin(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.setattr('sys.stdin', io.StringIO('a && b\n'))
        main([])
        data = json.loads(capsys.readouterr().out)
        assert data['type'] == 'list'
        assert data['op'] == 'and'

    def test_compact(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(['--compact', write(tmp_path, 'script.sh', 'a | b\n')])
        out = capsys.readouterr().out
        assert out.count('\n') == 1
        assert json.loads(out)['type'] == 'pipeline'

    def test_schema(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(['--schema'])
        assert '$defs' in json.loads(capsys.readouterr().out)

    def test_to_bash(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(['--compact', write(tmp_path, 'script.sh', 'for x in a b; do echo $x; done\n')])
        ast_file = write(tmp_path, 'ast.json', capsys.readouterr().out)
        main(['--to-bash', ast_file])
        assert capsys.readouterr().out == 'for x in a b; do echo $x; done\n'

    def test_config_limits_apply(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = write(tmp_path, 'config.json', json.dumps({'max_script_size': 4}))
        with pytest.raises(SystemExit) as exc_info:
            main(['--config', config, write(tmp_path, 'script.sh', 'echo too long\n')])
        assert exc_info.value.code == 1
        assert 'larger than the 4 byte limit' in capsys.readouterr().err


class TestErrors:
    """Verify failures print one line to stderr and exit 1."""

    @pytest.mark.parametrize(
        'content, message',
        [
            ('   \n', 'bash-ast: Script is empty or contains only whitespace'),
            ('if true; then\n', 'bash-ast: Syntax error in script'),
        ],
    )
    def test_bad_script(self, tmp_path: Path, capsys: pytest.CaptureFixture[str], content: str, message: str) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([write(tmp_path, 'script.sh', content)])
        assert exc_info.value.code == 1
        assert capsys.readouterr().err.startswith(message)

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / 'nope.sh')])
        assert exc_info.value.code == 1
        assert capsys.readouterr().err.startswith('bash-ast: ')

    def test_invalid_ast(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(['--to-bash', write(tmp_path, 'ast.json', '{"type": "nope"}')])
        assert exc_info.value.code == 1
        assert capsys.readouterr().err.startswith('bash-ast: ')

    def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = write(tmp_path, 'config.json', '{"max_depth": -1}')
        with pytest.raises(SystemExit):
            main(['--config', config, write(tmp_path, 'script.sh', 'echo hi\n')])
        assert 'Invalid config file at' in capsys.readouterr().err
