import pytest

from crust.errors import ShellError
from crust.frame import Frame


def test_inner_declaration_shadows_outer():
    root = Frame(environ={})
    root.declare_var('x', 1)
    inner = root.child()
    inner.declare_var('x', 2)
    assert inner.get_var('x') == 2
    assert root.get_var('x') == 1


def test_assign_updates_nearest_binding():
    root = Frame(environ={})
    root.declare_var('x', 1)
    inner = root.child().child()
    inner.assign_existing('x', 5)
    assert root.get_var('x') == 5
    assert 'x' not in inner.variables


def test_undeclared_assignment_lands_in_call_frame():
    root = Frame(environ={})
    call = root.call_frame()
    block = call.child().child()
    block.assign_existing('y', 3)
    assert call.variables['y'] == (False, 3)
    assert root.lookup('y') is None
    root.child().assign_existing('z', 4)
    assert root.get_var('z') == 4


def test_environment_is_shared_by_children():
    environ = {}
    root = Frame(environ=environ)
    assert root.call_frame().child().environ is environ
    assert root.call_frame().call
    assert not root.child().call


def test_missing_variable():
    with pytest.raises(ShellError) as exc:
        Frame(environ={}).get_var('nope')
    assert exc.value.kind == 'VariableNotFound'
    assert exc.value.message == "variable with name: 'nope' not found"


def test_environment_fallback():
    frame = Frame(environ={'HOME': '/home/me'})
    assert frame.child().get_var('HOME') == '/home/me'
    frame.declare_var('HOME', 'shadowed')
    assert frame.get_var('HOME') == 'shadowed'


@pytest.mark.parametrize('value, expected', [
    ('text', 'text'),
    (42, '42'),
    (1.5, '1.5'),
    (True, 'true'),
])
def test_export_writes_environment(value, expected):
    environ = {}
    frame = Frame(environ=environ)
    frame.declare_var('V', value, exported=True)
    assert environ == {'V': expected}


def test_exported_assignment_updates_environment():
    environ = {}
    root = Frame(environ=environ)
    root.declare_var('V', 'a', exported=True)
    root.child().assign_existing('V', 'b')
    assert environ['V'] == 'b'


@pytest.mark.parametrize('value', [None, [1], {'a': 1}])
def test_export_rejects_non_scalars(value):
    environ = {}
    with pytest.raises(ShellError) as exc:
        Frame(environ=environ).declare_var('V', value, exported=True)
    assert exc.value.kind == 'InvalidExport'
    assert environ == {}


def test_functions_resolve_through_parents():
    root = Frame(environ={})
    root.declare_fn('f', 'outer')
    inner = root.child()
    assert inner.get_fn('f') == 'outer'
    inner.declare_fn('f', 'inner')
    assert inner.get_fn('f') == 'inner'
    assert root.get_fn('f') == 'outer'
    assert root.get_fn('g') is None


def test_assigning_an_environment_variable_updates_it():
    environ = {'P': 'a'}
    frame = Frame(environ=environ).call_frame().child()
    frame.assign_existing('P', frame.get_var('P') + 'b')
    assert environ['P'] == 'ab'
    assert frame.lookup('P') is None
    with pytest.raises(ShellError) as exc:
        frame.assign_existing('P', [1])
    assert exc.value.kind == 'InvalidExport'


def test_builtin_variables_sit_between_frames_and_environment():
    calls = []
    builtin_vars = {'status': lambda shell: shell['status'], 'null': lambda shell: calls.append(1)}
    root = Frame(environ={'status': 'env'}, builtin_vars=builtin_vars, shell={'status': 3})
    inner = root.child()
    assert inner.get_var('status') == 3
    assert inner.get_var('null') is None
    assert calls == [1]
    inner.declare_var('status', 'local')
    assert inner.get_var('status') == 'local'
    assert root.get_var('status') == 3


def test_drop_removes_nearest_binding():
    root = Frame(environ={})
    root.declare_var('x', 1)
    inner = root.child()
    inner.declare_var('x', 2)
    inner.drop_var('x')
    assert inner.get_var('x') == 1
    inner.drop_var('x')
    with pytest.raises(ShellError) as exc:
        inner.drop_var('x')
    assert exc.value.kind == 'VariableNotFound'
