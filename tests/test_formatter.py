import json

import pytest

from crust.ast import Literal, Program
from crust.ast_json import ast_from_obj, ast_to_obj
from crust.formatter import format_name, to_source
from crust.parser import parse_program

PROGRAM = """
# comments are not kept
let x = 1 + 2 * 3
export NAME = 'crust'
let $if = (1 + 2) * 3
$x += 1
$x = -$x ** 2
fn greet(who, greeting) {
    "$greeting, $who!\\ttab"
    return
}
if $x > 3 && $x < 100 { echo big } else if $x == 3 { echo three } else { echo small }
while $x > 0 { $x -= 10; if $x < 50 { break } }
loop { break }
for i in 0..3 { if $i == 1 { continue }; echo item-$i }
try { 1 / 0 } catch err { print "failed: $err" }
let m = @{name: 'a', 'two words': [1, 2.5, true]}
let f = {|a, b| $a + $b}
let g = {||}
let r = @'^a\\d+'
{ let inner = !false }
$m.name
$m.items[0]
echo a | lines > out.txt
lines < in.txt
echo more >> log.txt
&ls -la $dir/*.txt
?(open missing.txt)
echo a(1 + 2)b "q $x" 'it\\'s' 1_000
"""


def test_format_reparses_to_same_tree():
    program = parse_program(PROGRAM)
    formatted = to_source(program)
    assert parse_program(formatted) == program


def test_format_is_idempotent():
    formatted = to_source(parse_program(PROGRAM))
    assert to_source(parse_program(formatted)) == formatted


def test_format_normalises_layout():
    formatted = to_source(parse_program('let   x=1+2\nif $x>1 {echo yes}'))
    assert formatted == 'let x = 1 + 2\nif $x > 1 {\n    echo yes\n}\n'


def test_format_closures_and_maps():
    formatted = to_source(parse_program('let f = {|a| $a}\n@{k: 1}'))
    assert formatted == "let f = {|a|\n    $a\n}\n@{'k': 1}\n"


@pytest.mark.parametrize('name, expected', [
    ('x', 'x'),
    ('if', '$if'),
    ('true', '$true'),
    ('1a', '$1a'),
])
def test_format_name(name, expected):
    assert format_name(name) == expected


def test_string_with_trailing_backslash_uses_double_quotes():
    node = Program([Literal('a\\', 'str')])
    assert to_source(node) == '"a\\\\"\n'
    assert parse_program(to_source(node)).body[0].parts == ['a\\']


def test_ast_json_round_trip():
    program = parse_program(PROGRAM)
    obj = json.loads(json.dumps(ast_to_obj(program)))
    assert obj['type'] == 'Program'
    assert obj['span'] == [0, len(PROGRAM)]
    restored = ast_from_obj(obj)
    assert restored == program
    assert restored.body[0].span == program.body[0].span


def test_ast_json_rejects_unknown_nodes():
    with pytest.raises(ValueError):
        ast_from_obj({'type': 'Nope'})
