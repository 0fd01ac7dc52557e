from pathlib import Path

from crust.interpreter import parse_program, Interpreter

PROGRAMS = Path(__file__).parent / 'programs'


def load(name):
    with open(PROGRAMS / name, 'r', encoding='utf-8') as f:
        return f.read()


def test_fizzbuzz(capsys):
    ast = parse_program(load('fizzbuzz.crust'))
    interp = Interpreter(environ={})
    assert interp.run(ast) == 0
    out = capsys.readouterr().out.split()
    assert out == [
        '1', '2', 'Fizz', '4', 'Buzz', 'Fizz', '7', '8', 'Fizz', 'Buzz',
        '11', 'Fizz', '13', '14', 'FizzBuzz',
    ]


def test_counter_closure(capsys):
    ast = parse_program(load('counter.crust'))
    interp = Interpreter(environ={})
    interp.run(ast)
    out = capsys.readouterr().out.strip()
    assert out == '1\n2\nfinal: 3'


def test_pipeline(capsys):
    ast = parse_program(load('pipeline.crust'))
    interp = Interpreter(environ={})
    interp.run(ast)
    out = capsys.readouterr().out.strip()
    assert out == '3\n2'


def test_errors_and_exit(capsys):
    ast = parse_program(load('errors.crust'))
    interp = Interpreter(environ={})
    status = interp.run(ast)
    out = capsys.readouterr().out.strip()
    assert status == 3
    assert out == '3.0\nerror: division by zero\n0\nchecked'
