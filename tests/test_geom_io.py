import json
import os
import sys

import numpy as np
import pytest
import yaml

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import ProblemDefinitionError
from geometry.geom_io import load_data, parse_problem, save_result
from runtime.fdm import solve_forward
from sample_networks import grid_edges, grid_nodes


def _problem_data(**overrides):
    data = {
        "nodes": grid_nodes(3).tolist(),
        "edges": [list(e) for e in grid_edges(3)],
        "fixed": [0, 2, 6, 8],
        "loads": [0.0, 0.0, -0.5],
        "q_init": 2.0,
        "bounds": {"lower": 0.1, "upper": "inf"},
        "objectives": [
            {"type": "target_xyz", "weight": 1.0},
            {"type": "sum_force_length", "weight": "1e-3"},
        ],
        "solver": {"max_iterations": "40", "absolute_tolerance": "1e-5"},
    }
    data.update(overrides)
    return data


def test_parse_problem_builds_consistent_problem():
    problem, state = parse_problem(_problem_data())
    topo = problem.topology
    assert topo.num_nodes == 9 and topo.num_edges == 12
    np.testing.assert_array_equal(topo.fixed_node_indices, [0, 2, 6, 8])
    assert problem.free_node_loads.shape == (5, 3)
    assert np.all(problem.bounds.lower == 0.1)
    assert np.all(np.isposinf(problem.bounds.upper))
    assert problem.solver.max_iterations == 40
    assert problem.solver.absolute_tolerance == 1e-5
    assert [t.name for t in problem.objectives] == ["target_xyz", "sum_force_length"]
    np.testing.assert_array_equal(state.force_densities, 2.0)
    assert state.variable_anchor_positions.shape == (0, 3)


def test_per_node_loads_and_per_edge_bounds():
    loads = [[0.0, 0.0, -float(i)] for i in range(5)]
    problem, _ = parse_problem(
        _problem_data(loads=loads, bounds={"lower": [0.5] * 12, "upper": 9.0})
    )
    np.testing.assert_array_equal(problem.free_node_loads[:, 2], [0, -1, -2, -3, -4])
    assert np.all(problem.bounds.upper == 9.0)


def test_variable_anchors_start_at_their_input_positions():
    problem, state = parse_problem(_problem_data(variable_anchors=[8]))
    assert problem.anchors.num_variable == 1
    np.testing.assert_array_equal(state.variable_anchor_positions, [grid_nodes(3)[8]])


@pytest.mark.parametrize(
    "overrides",
    [
        {"fixed": []},
        {"edges": [[0, 99]]},
        {"bounds": {"lower": [0.1, 0.2]}},
        {"bounds": {"lower": 5.0, "upper": 1.0}},
        {"q_init": "fast"},
        {"objectives": [{"type": "no_such_term"}]},
        {"variable_anchors": [4]},
    ],
)
def test_invalid_problem_data_raises(overrides):
    with pytest.raises(ProblemDefinitionError):
        parse_problem(_problem_data(**overrides))


def test_missing_required_key():
    data = _problem_data()
    del data["edges"]
    with pytest.raises(ProblemDefinitionError):
        parse_problem(data)


def test_load_yaml_and_json(tmp_path):
    data = _problem_data()
    ypath = tmp_path / "problem.yaml"
    ypath.write_text(yaml.safe_dump(data), encoding="utf-8")
    jpath = tmp_path / "problem.json"
    jpath.write_text(json.dumps(data), encoding="utf-8")
    assert load_data(ypath) == load_data(jpath)

    txt = tmp_path / "problem.txt"
    txt.write_text("nodes: []", encoding="utf-8")
    with pytest.raises(ValueError):
        load_data(txt)


def test_save_result_writes_json(tmp_path):
    problem, state = parse_problem(_problem_data())
    result = solve_forward(problem, state.force_densities)
    out = tmp_path / "result.json"
    save_result(result, out)
    saved = json.loads(out.read_text(encoding="utf-8"))
    assert saved["termination_reason"] == "forward solve"
    assert len(saved["xyz"]) == 9
    np.testing.assert_allclose(saved["member_forces"], result.member_forces)
