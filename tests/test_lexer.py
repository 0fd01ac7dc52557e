import pytest

from crust.lexer import Span, tokenize

SAMPLES = [
    '',
    'ls -la | grep "x" # trailing comment',
    'let x = 1_000 + 2.5 ** $y',
    "echo 'it\\'s' \"a $b $(c) \\x41\"",
    '\x00\x01\x02\x1b[0m',
    'fn f(a, b) { return $a..$b }\n',
    '∑ é 🙂 ٣ $٣',
    'trailing\\',
    '$ $$ $1a @{k: v} @\'re\' ?(x) &cmd >> out < in',
    '\r\n\t \x0b',
    'a\\ b\\\nc',
    '1.2.3 12abc ..',
]


@pytest.mark.parametrize('source', SAMPLES)
def test_lexing_is_total(source):
    tokens = tokenize(source)
    assert ''.join(t.text(source) for t in tokens) == source
    position = 0
    for token in tokens:
        assert token.span.start == position
        assert token.span.end > token.span.start
        position = token.span.end


@pytest.mark.parametrize('source', SAMPLES)
def test_token_spans_round_trip(source):
    for token in tokenize(source):
        relexed = tokenize(token.text(source))
        assert relexed[0].kind == token.kind
        assert relexed[0].value == token.value


def test_keywords_and_literals():
    kinds = [t.kind for t in tokenize('if true { let x = 42 } else { 3.5 }') if t.kind != 'SPACE']
    assert kinds == ['if', 'BOOL', '{', 'let', 'SYMBOL', '=', 'INT', '}', 'else', '{', 'FLOAT', '}']


def test_numbers():
    tokens = tokenize('1_000 2.50 7..9')
    assert (tokens[0].kind, tokens[0].value) == ('INT', 1000)
    assert (tokens[2].kind, tokens[2].value) == ('FLOAT', '2.50')
    assert [t.kind for t in tokens[4:]] == ['INT', '..', 'INT']


def test_variables_and_dollar():
    tokens = tokenize('$name $ $(x)')
    assert (tokens[0].kind, tokens[0].value) == ('VARIABLE', 'name')
    assert tokens[2].kind == 'DOLLAR'
    assert tokens[4].kind == 'DOLLAR'
    assert tokens[5].kind == '('


def test_longest_operator_wins():
    kinds = [t.kind for t in tokenize('**= ** =~ != !~ >> && || ..') if t.kind != 'SPACE']
    assert kinds == ['**=', '**', '=~', '!=', '!~', '>>', '&&', '||', '..']


def test_escaped_word():
    token = tokenize('a\\ b')[0]
    assert token.kind == 'SYMBOL'
    assert token.value == 'a b'
    assert token.span == Span(0, 4)


def test_keyword_needs_exact_text():
    token = tokenize('i\\f')[0]
    assert token.kind == 'SYMBOL'
    assert token.value == 'if'


def test_span_line_col():
    source = 'one\ntwo three'
    token = [t for t in tokenize(source) if t.value == 'three'][0]
    assert token.span.line_col(source) == (2, 5)
