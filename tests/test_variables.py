"""
Tests for variable sets, variables and sub-variable views.
"""

import pytest
from numpy.testing import assert_allclose

from guided_projection import GuidedProjectionAlgorithm
from guided_projection.core import SubVariable
from guided_projection.core.energy_types import ScalarEquality
from guided_projection.errors import CapacityError, SequencingError, VariableIndexError


def test_variable_sets_are_laid_out_contiguously():
    solver = GuidedProjectionAlgorithm()
    points = solver.add_variable_set(3, 2)
    lengths = solver.add_variable_set(1, 4)
    assert points.offset == 0
    assert lengths.offset == 6
    assert solver.component_count == 10

    p = points.add_variable(1.0, 2.0, 3.0)
    q = points.add_variable([4.0, 5.0, 6.0])
    length = lengths.add_variable(7.0)
    assert p.global_indices == [0, 1, 2]
    assert q.global_indices == [3, 4, 5]
    assert length.reference_index(0) == 6
    assert points.reference_index(1, 2) == 5
    assert len(points) == 2 and points.is_full


def test_capacity_error():
    solver = GuidedProjectionAlgorithm()
    pool = solver.add_variable_set(2, 1)
    pool.add_variable(0.0, 1.0)
    with pytest.raises(CapacityError):
        pool.add_variable(2.0, 3.0)
    with pytest.raises(ValueError):
        solver.add_variable_set(2, 2).add_variable(1.0)


def test_values_staged_before_initialisation_then_live():
    """Before initialise_x reads hit the staged values; after, X itself."""
    solver = GuidedProjectionAlgorithm()
    v = solver.add_variable(1.0, 2.0, 3.0)
    v[0] = 10.0
    assert v[0] == 10.0

    solver.initialise_x()
    assert solver[0] == 10.0
    v[2] = -1.0
    assert solver[2] == -1.0
    assert_allclose(v.to_array(), [10.0, 2.0, -1.0])
    assert_allclose(v.variable_set.values(), [[10.0, 2.0, -1.0]])


def test_variable_component_range():
    solver = GuidedProjectionAlgorithm()
    v = solver.add_variable(1.0, 2.0)
    with pytest.raises(VariableIndexError):
        v[2]
    with pytest.raises(VariableIndexError):
        v.reference_index(-1)


def test_set_slot_access():
    solver = GuidedProjectionAlgorithm()
    pool = solver.add_variable_set(1, 3)
    pool.add_variable(5.0)
    assert pool[0][0] == 5.0
    with pytest.raises(VariableIndexError):
        pool[1]
    with pytest.raises(VariableIndexError):
        pool[3]
    assert [variable[0] for variable in pool] == [5.0]


def test_no_variables_after_initialisation():
    solver = GuidedProjectionAlgorithm()
    pool = solver.add_variable_set(1, 2)
    pool.add_variable(1.0)
    solver.initialise_x()
    with pytest.raises(SequencingError):
        pool.add_variable(2.0)
    with pytest.raises(SequencingError):
        solver.add_variable(3.0)
    with pytest.raises(SequencingError):
        solver.add_variable_set(1, 1)


def test_sub_variable_validates_on_construction():
    solver = GuidedProjectionAlgorithm()
    parent = solver.add_variable(2.0, 3.0, 5.0)
    with pytest.raises(VariableIndexError):
        SubVariable(parent, [0, 3])
    with pytest.raises(VariableIndexError):
        SubVariable(parent, [-1])
    with pytest.raises(ValueError):
        SubVariable(parent, [1, 1])
    with pytest.raises(ValueError):
        SubVariable(parent, [])


def test_sub_variable_reindexes_parent():
    solver = GuidedProjectionAlgorithm()
    parent = solver.add_variable(2.0, 3.0, 5.0)
    xz = SubVariable(parent, [2, 0])
    assert xz.dimension == 2
    assert xz.global_indices == [2, 0]
    assert_allclose(xz.to_array(), [5.0, 2.0])

    solver.initialise_x()
    xz[0] = 7.0
    assert parent[2] == 7.0
    parent[0] = -1.0
    assert xz[1] == -1.0


def test_nested_and_ranged_sub_variables():
    solver = GuidedProjectionAlgorithm()
    parent = solver.add_variable(0.0, 1.0, 2.0, 3.0)
    middle = SubVariable.from_range(parent, 1, 3)
    assert middle.indices == (1, 2, 3)
    inner = SubVariable(middle, [2])
    assert inner.reference_index(0) == 3
    solver.initialise_x()
    inner[0] = 9.0
    assert parent[3] == 9.0
    assert middle[2] == 9.0


def test_sub_variable_never_drifts_from_parent():
    """The view over index 1 always reads the parent's live component."""
    solver = GuidedProjectionAlgorithm(epsilon=1e-4)
    parent = solver.add_variable(2.0, 3.0, 5.0)
    view = SubVariable(parent, [1])
    solver.add_energy(ScalarEquality(1.0), [view])
    solver.initialise_x()
    for _ in range(5):
        solver.run_iteration(False)
        assert view[0] == parent[1]
    assert parent[1] == pytest.approx(1.0, abs=1e-8)
    assert parent[0] == pytest.approx(2.0, abs=1e-12)
    assert parent[2] == pytest.approx(5.0, abs=1e-12)
