import jax.numpy as jnp
import numpy as np
import pytest

from pyadfem.assembly.tape import DifferentiationTape
from pyadfem.core.errors import TapeDisciplineError


def f(x):
    return jnp.stack([x[0] * x[1], jnp.sin(x[0]), x[1] ** 3 + x[2]])


def analytic_jacobian(x):
    return np.array([[x[1], x[0], 0.0],
                     [np.cos(x[0]), 0.0, 0.0],
                     [0.0, 3 * x[1] ** 2, 1.0]])


def test_full_jacobian():
    x = np.array([0.3, -1.2, 2.0])
    tape = DifferentiationTape()
    tape.new_recording()
    tape.independent(x)
    y = tape.record(f)
    tape.dependent()
    J = tape.jacobian()
    assert isinstance(y, np.ndarray)
    assert np.allclose(y, [x[0] * x[1], np.sin(x[0]), x[1] ** 3 + x[2]])
    assert J.shape == (3, 3)
    assert np.allclose(J, analytic_jacobian(x))


def test_selected_dependents_in_declaration_order():
    x = np.array([0.3, -1.2, 2.0])
    tape = DifferentiationTape()
    tape.new_recording()
    tape.independent(x)
    tape.record(f)
    tape.dependent(2)
    tape.dependent(slice(0, 1))
    J = tape.jacobian()
    assert np.allclose(J, analytic_jacobian(x)[[2, 0]])


def test_clear_dependents_then_redeclare():
    x = np.array([1.0, 2.0, 3.0])
    tape = DifferentiationTape()
    tape.new_recording()
    tape.independent(x)
    tape.record(f)
    tape.dependent(0)
    first = tape.jacobian()
    tape.clear_dependents()
    with pytest.raises(TapeDisciplineError):
        tape.jacobian()
    tape.dependent(1)
    second = tape.jacobian()
    assert np.allclose(first, [[2.0, 1.0, 0.0]])
    assert np.allclose(second, [[np.cos(1.0), 0.0, 0.0]])


def test_new_recording_discards_previous_state():
    tape = DifferentiationTape()
    tape.new_recording()
    tape.independent([1.0, 2.0, 3.0])
    tape.record(f)
    tape.dependent()
    tape.new_recording()
    assert tape.n_dependent == 0
    assert tape.n_independent == 0
    with pytest.raises(TapeDisciplineError):
        tape.jacobian()


@pytest.mark.parametrize("steps", [
    [],                                   # nothing registered
    ["new"],                              # no independents
    ["new", "ind"],                       # nothing recorded
    ["new", "ind", "rec"],                # no dependents
    ["new", "ind", "rec", "dep", "clear_ind"],
])
def test_jacobian_out_of_order(steps):
    tape = DifferentiationTape()
    actions = {
        "new": tape.new_recording,
        "ind": lambda: tape.independent([1.0, 2.0, 3.0]),
        "rec": lambda: tape.record(f),
        "dep": tape.dependent,
        "clear_ind": tape.clear_independents,
    }
    for s in steps:
        actions[s]()
    with pytest.raises(TapeDisciplineError):
        tape.jacobian()


def test_registration_order_is_enforced():
    tape = DifferentiationTape()
    with pytest.raises(TapeDisciplineError):
        tape.independent([1.0])
    tape.new_recording()
    with pytest.raises(TapeDisciplineError):
        tape.record(f)
    with pytest.raises(TapeDisciplineError):
        tape.dependent()
    tape.independent([1.0, 2.0, 3.0])
    tape.record(f)
    with pytest.raises(TapeDisciplineError):
        tape.independent([4.0, 5.0, 6.0])
    with pytest.raises(TapeDisciplineError):
        tape.record(f)


def test_recording_context_always_clears():
    tape = DifferentiationTape()
    with pytest.raises(RuntimeError):
        with tape.recording():
            tape.independent([1.0, 2.0, 3.0])
            tape.record(f)
            raise RuntimeError("kernel failure")
    assert not tape.is_recording
    assert tape.n_independent == 0
