import json

import pytest

from crust.__main__ import main


def test_command(capsys):
    with pytest.raises(SystemExit) as exc:
        main(['-c', 'echo hi'])
    assert exc.value.code == 0
    assert capsys.readouterr().out == 'hi\n'


def test_command_exit_status():
    with pytest.raises(SystemExit) as exc:
        main(['-c', 'exit 3'])
    assert exc.value.code == 3


def test_command_error_is_rendered(capsys):
    with pytest.raises(SystemExit) as exc:
        main(['-c', 'echo ok\n$nope'])
    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == 'ok\n'
    assert captured.err == "<command>:2:1: variable with name: 'nope' not found\n$nope\n^^^^^\n"


def test_program_file(tmp_path, capsys):
    script = tmp_path / 'script.crust'
    script.write_text('echo from file\nexit 2\n')
    with pytest.raises(SystemExit) as exc:
        main([str(script)])
    assert exc.value.code == 2
    assert capsys.readouterr().out == 'from file\n'


def test_missing_program_file(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main([str(tmp_path / 'missing.crust')])
    assert exc.value.code == 1


def test_format(tmp_path, capsys):
    script = tmp_path / 'script.crust'
    script.write_text('let   x=1\n')
    main(['--format', str(script)])
    assert capsys.readouterr().out == 'let x = 1\n'


def test_emit_and_run_ast(tmp_path, capsys):
    script = tmp_path / 'script.crust'
    script.write_text("echo (1 + 2)\n")
    main(['--emit-ast', str(script)])
    ast_path = tmp_path / 'script.crust.ast.json'
    assert capsys.readouterr().out.strip() == str(ast_path)
    with open(ast_path, 'r', encoding='utf-8') as f:
        assert json.load(f)['type'] == 'Program'
    with pytest.raises(SystemExit) as exc:
        main(['--ast', str(ast_path)])
    assert exc.value.code == 0
    assert capsys.readouterr().out == '3\n'


def test_deep_nesting_is_reported(capsys):
    with pytest.raises(SystemExit) as exc:
        main(['-c', '(' * 2000 + '1' + ')' * 2000])
    assert exc.value.code == 1
    assert 'nesting exceeds 128 levels' in capsys.readouterr().err


def test_format_rejects_deep_nesting(tmp_path, capsys):
    script = tmp_path / 'deep.crust'
    script.write_text('[' * 500 + ']' * 500)
    with pytest.raises(SystemExit) as exc:
        main(['--format', str(script)])
    assert exc.value.code == 1
    assert 'nesting exceeds' in capsys.readouterr().err
