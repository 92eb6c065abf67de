import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import ProblemDefinitionError
from modules.objectives.base import ObjectiveGradients, expand_rows, expand_values
from modules.objectives.max_length import MaxLength
from modules.objectives.min_length import MinLength
from modules.objectives.planar_constraint_along_direction import (
    PlanarConstraintAlongDirection,
)
from modules.objectives.sum_force_length import SumForceLength
from modules.objectives.target_length import TargetLength
from modules.objectives.target_xyz import TargetXYZ
from runtime.fdm import solve_forward
from runtime.objective_manager import ObjectiveModuleManager
from sample_networks import grid_nodes, grid_problem

ALL_TYPES = [
    "target_xyz",
    "target_xy",
    "target_plane",
    "planar_constraint_along_direction",
    "target_length",
    "length_variation",
    "force_variation",
    "sum_force_length",
    "min_length",
    "max_length",
    "min_force",
    "max_force",
    "rigid_set_compare",
    "reaction_direction",
    "reaction_direction_magnitude",
]


def _grads(problem):
    topo = problem.topology
    return ObjectiveGradients.zeros(topo.num_nodes, topo.num_edges)


def test_expand_repeats_last_value():
    np.testing.assert_array_equal(expand_values([1.0, 2.0], 4), [1.0, 2.0, 2.0, 2.0])
    np.testing.assert_array_equal(expand_values(3.0, 2), [3.0, 3.0])
    np.testing.assert_array_equal(expand_values([1, 2, 3], 2), [1.0, 2.0])
    rows = expand_rows([[0, 0, 1]], 3)
    assert rows.shape == (3, 3)
    with pytest.raises(ProblemDefinitionError):
        expand_values([], 3)


@pytest.mark.parametrize("kind", ALL_TYPES)
def test_manager_builds_every_objective_type(kind):
    problem = grid_problem(4)
    config = {"type": kind, "weight": 1.0}
    if kind in ("target_length", "min_length", "max_length", "min_force", "max_force"):
        key = "targets" if kind == "target_length" else "thresholds"
        config[key] = [1.0]
    if kind == "rigid_set_compare":
        config["nodes"] = [5, 6, 9]
    manager = ObjectiveModuleManager([kind])
    term = manager.build(config, problem.topology, node_positions=grid_nodes(4))
    assert term.name == kind

    geometry = solve_forward(problem, 1.0)
    loss = term.contribute(geometry, _grads(problem))
    assert np.isfinite(loss)


def test_unknown_objective_type_is_a_definition_error():
    manager = ObjectiveModuleManager()
    with pytest.raises(ProblemDefinitionError):
        manager.build({"type": "no_such_objective"}, grid_problem(3).topology)
    with pytest.raises(ProblemDefinitionError):
        manager.build({"weight": 1.0}, grid_problem(3).topology)


def test_unexpected_config_key_is_reported():
    manager = ObjectiveModuleManager()
    with pytest.raises(ProblemDefinitionError):
        manager.build({"type": "sum_force_length", "colour": "red"}, grid_problem(3).topology)


def test_missing_target_defaults_to_input_positions():
    problem = grid_problem(3)
    nodes = grid_nodes(3)
    term = ObjectiveModuleManager().build(
        {"type": "target_xyz"}, problem.topology, node_positions=nodes
    )
    np.testing.assert_array_equal(term.nodes, problem.topology.free_node_indices)
    np.testing.assert_array_equal(term.target, nodes[problem.topology.free_node_indices])


def test_defaults_cover_free_nodes_and_all_edges():
    problem = grid_problem(3, objectives=[SumForceLength(), PlanarConstraintAlongDirection()])
    edge_term, node_term = problem.objectives
    np.testing.assert_array_equal(edge_term.edges, np.arange(problem.topology.num_edges))
    np.testing.assert_array_equal(node_term.nodes, problem.topology.free_node_indices)


def test_index_validation():
    with pytest.raises(ProblemDefinitionError):
        grid_problem(3, objectives=[SumForceLength(edges=[99])])
    with pytest.raises(ProblemDefinitionError):
        grid_problem(3, objectives=[TargetXYZ(nodes=[1, 2], target=[[0, 0, 0]])])
    with pytest.raises(ProblemDefinitionError):
        PlanarConstraintAlongDirection(direction=(1.0, 0.0, 0.0))
    with pytest.raises(ProblemDefinitionError):
        SumForceLength(weight=float("nan"))


def test_target_length_vanishes_at_current_lengths():
    base = grid_problem(3)
    lengths = solve_forward(base, 1.0).member_lengths
    problem = grid_problem(3, objectives=[TargetLength(targets=lengths)])
    geometry = solve_forward(problem, 1.0)
    grads = _grads(problem)
    assert problem.objectives[0].contribute(geometry, grads) == pytest.approx(0.0, abs=1e-20)
    np.testing.assert_allclose(grads.lengths, 0.0, atol=1e-10)


def test_sum_force_length_is_load_path():
    problem = grid_problem(3, objectives=[SumForceLength(weight=2.0)])
    geometry = solve_forward(problem, 1.5)
    expected = 2.0 * np.sum(np.abs(geometry.member_forces) * geometry.member_lengths)
    assert problem.objectives[0].contribute(geometry, _grads(problem)) == pytest.approx(expected)


def test_length_barriers_penalize_the_violating_side():
    problem = grid_problem(3, objectives=[MinLength(thresholds=[10.0]), MaxLength(thresholds=[10.0])])
    geometry = solve_forward(problem, 1.0)
    too_short, too_long = (
        term.contribute(geometry, _grads(problem)) for term in problem.objectives
    )
    # Every member is far shorter than 10: only the minimum-length barrier bites.
    assert too_short > 1.0
    assert too_long < 1e-10
