import pytest

from crust.ast import (
    Argument, ArgPart, Assign, AssignOp, BinaryOp, Block, Call, ClosureLit,
    Column, Expand, For, If, Index, Let, ListLit, Literal, MapLit, Pipe,
    Redirect, SubExpr, UnaryOp, Variable,
)
from crust.errors import ParseError
from crust.parser import parse_program


def parse_one(source):
    program = parse_program(source)
    assert len(program.body) == 1
    return program.body[0]


def test_multiplication_binds_tighter_than_addition():
    node = parse_one('1 + 2 * 3')
    assert node == BinaryOp('+', Literal(1, 'int'), BinaryOp('*', Literal(2, 'int'), Literal(3, 'int')))


def test_exponent_is_right_associative():
    node = parse_one('2 ** 3 ** 2')
    assert node == BinaryOp('**', Literal(2, 'int'), BinaryOp('**', Literal(3, 'int'), Literal(2, 'int')))


def test_subtraction_is_left_associative():
    node = parse_one('10 - 3 - 2')
    assert node == BinaryOp('-', BinaryOp('-', Literal(10, 'int'), Literal(3, 'int')), Literal(2, 'int'))


def test_unary_binds_tighter_than_binary():
    node = parse_one('-$x ** 2')
    assert node == BinaryOp('**', UnaryOp('-', Variable('x')), Literal(2, 'int'))


def test_comparison_chaining_is_rejected():
    with pytest.raises(ParseError) as exc:
        parse_program('1 < 2 < 3')
    assert exc.value.kind == 'ComparisonChaining'


def test_command_call_arguments():
    node = parse_one('ls -la $dir/*.txt')
    assert isinstance(node, Call)
    assert node.command == Argument([ArgPart('bare', 'ls')])
    assert node.args[0] == Argument([ArgPart('bare', '-la')])
    assert node.args[1] == Argument([ArgPart('variable', 'dir'), ArgPart('bare', '/*.txt')])


def test_bare_words_are_strings_in_conditions():
    node = parse_one('if $x == yes { echo ok }')
    assert isinstance(node, If)
    assert node.condition == BinaryOp('==', Variable('x'), Literal('yes', 'str'))
    assert isinstance(node.body, Block)
    assert isinstance(node.body.body[0], Call)


def test_assignments():
    assert parse_one('$x = 1') == Assign('x', Literal(1, 'int'))
    assert parse_one('$x += 2') == AssignOp('x', '+', Literal(2, 'int'))
    assert parse_one('let y') == Let('y', None)
    assert parse_one('export Z = a') == Let('Z', Call(Argument([ArgPart('bare', 'a')]), []), export=True)


def test_pipe_and_redirect():
    node = parse_one('ls | lines > out.txt')
    assert isinstance(node, Pipe)
    assert isinstance(node.stages[0], Call)
    redirect = node.stages[1]
    assert isinstance(redirect, Redirect)
    assert redirect.direction == 'right'
    assert not redirect.append
    assert redirect.target == Argument([ArgPart('bare', 'out.txt')])


def test_append_and_input_redirects():
    assert parse_one('echo a >> log').append
    assert parse_one('lines < in.txt').direction == 'left'


def test_postfix_access():
    node = parse_one('$rows[0].name')
    assert node == Column(Index(Variable('rows'), Literal(0, 'int')), 'name')


def test_collections_and_closures():
    node = parse_one('let v = [1, @{a: 2}, {|x| $x}]')
    value = node.value
    assert isinstance(value, ListLit)
    assert isinstance(value.elements[1], MapLit)
    assert value.elements[1].entries == [(Literal('a', 'str'), Literal(2, 'int'))]
    closure = value.elements[2]
    assert isinstance(closure, ClosureLit)
    assert closure.params == ['x']
    assert closure.body.body == [Variable('x')]


def test_expand_string_parts():
    node = parse_one('"a $b $(1 + 2)\\t"')
    assert node == Expand(['a ', Variable('b'), ' ', BinaryOp('+', Literal(1, 'int'), Literal(2, 'int')), '\t'])


def test_comments_are_skipped():
    program = parse_program('# heading\necho a # note\n# done')
    assert len(program.body) == 1
    assert program.body[0].args == [Argument([ArgPart('bare', 'a')])]


def test_hash_inside_strings_is_text():
    assert parse_one("'a # b'") == Literal('a # b', 'str')


def test_for_loop():
    node = parse_one('for i in 0..3 { $i }')
    assert isinstance(node, For)
    assert node.var == 'i'
    assert node.iterable == BinaryOp('..', Literal(0, 'int'), Literal(3, 'int'))


def test_sub_expression_argument():
    node = parse_one('echo a(1)b')
    assert node.args[0].parts[1] == ArgPart('expr', SubExpr(Literal(1, 'int')))


def test_spans_cover_source():
    source = 'let x = 1 + 2'
    node = parse_one(source)
    assert source[node.span.start:node.span.end] == source
    assert source[node.value.span.start:node.value.span.end] == '1 + 2'


@pytest.mark.parametrize('source, kind', [
    ('break', 'BreakOutsideLoop'),
    ('continue', 'ContinueOutsideLoop'),
    ('return 1', 'ReturnOutsideFunction'),
    ('fn f() { break }', 'BreakOutsideLoop'),
    ('loop { fn g() { continue } }', 'ContinueOutsideLoop'),
    ('let = 1', 'UnexpectedToken'),
    ('echo "abc', 'ExpectedToken'),
    ('if true {', 'ExpectedToken'),
    ('"\\xFF"', 'InvalidHexEscape'),
    ("@'('", 'Regex'),
    ('fn $f() {}', 'InvalidIdentifier'),
    ('let 9 = 1', 'UnexpectedToken'),
])
def test_parse_errors(source, kind):
    with pytest.raises(ParseError) as exc:
        parse_program(source)
    assert exc.value.kind == kind


def test_parse_error_render():
    source = 'echo ok\nlet = 1'
    with pytest.raises(ParseError) as exc:
        parse_program(source)
    rendered = exc.value.render(source, 'script.crust')
    assert rendered == "script.crust:2:5: unexpected token '='\nlet = 1\n    ^"


@pytest.mark.parametrize('source', [
    '(' * 2000 + '1' + ')' * 2000,
    '{ ' * 2000 + '}' * 2000,
    '-' * 2000 + '1',
    '2' + ' ** 2' * 2000,
    'if true {} ' + 'else if true {} ' * 2000,
    'echo (' * 2000 + 'x' + ')' * 2000,
    '[' * 2000 + ']' * 2000,
])
def test_deep_nesting_is_a_parse_error(source):
    with pytest.raises(ParseError) as exc:
        parse_program(source)
    assert exc.value.kind == 'NestingTooDeep'
    assert exc.value.span is not None


def test_moderate_nesting_parses():
    node = parse_one('(' * 60 + '1' + ')' * 60)
    for _ in range(60):
        assert isinstance(node, SubExpr)
        node = node.expr
    assert node == Literal(1, 'int')
