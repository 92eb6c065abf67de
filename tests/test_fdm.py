import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import ProblemDefinitionError
from geometry.network import NetworkTopology, build_incidence
from runtime.factorization import FactorizationStrategy
from runtime.fdm import FdmCache, compute_geometry, fixed_positions, solve_fdm, solve_forward
from sample_networks import arch_problem, grid_problem


def test_incidence_signs():
    C = build_incidence([(0, 1), (2, 1)], 3).toarray()
    np.testing.assert_array_equal(C, [[-1, 1, 0], [0, 1, -1]])


def test_topology_validation():
    with pytest.raises(ProblemDefinitionError):
        NetworkTopology.from_edges([(0, 0)], 2, [1])
    with pytest.raises(ProblemDefinitionError):
        NetworkTopology.from_edges([(0, 5)], 2, [1])
    with pytest.raises(ProblemDefinitionError):
        NetworkTopology.from_edges([(0, 1)], 2, [])


def test_forward_solve_satisfies_free_node_equilibrium():
    problem = grid_problem(5)
    result = solve_forward(problem, 2.0)
    free = problem.topology.free_node_indices
    np.testing.assert_allclose(result.reactions[free], 0.0, atol=1e-9)


def test_support_reactions_balance_applied_loads():
    problem = grid_problem(4, load=-0.3)
    result = solve_forward(problem, 1.0)
    fixed = problem.topology.fixed_node_indices
    total_load = problem.free_node_loads.sum(axis=0)
    np.testing.assert_allclose(result.reactions[fixed].sum(axis=0), -total_load, atol=1e-9)


def test_forces_are_density_times_length():
    problem = grid_problem(4)
    q = np.linspace(0.5, 2.0, problem.topology.num_edges)
    result = solve_forward(problem, q)
    np.testing.assert_allclose(result.member_forces, q * result.member_lengths)
    assert np.all(result.member_lengths > 0.0)


def test_symmetric_grid_sags_symmetrically():
    n = 5
    problem = grid_problem(n)
    z = solve_forward(problem, 1.0).xyz[:, 2].reshape(n, n)
    assert z[n // 2, n // 2] < 0.0
    np.testing.assert_allclose(z, z.T, atol=1e-9)
    np.testing.assert_allclose(z, z[::-1, :], atol=1e-9)


def test_negative_densities_raise_the_arch():
    problem = arch_problem(5)
    result = solve_forward(problem, -1.0)
    assert np.all(result.xyz[problem.topology.free_node_indices, 2] > 0.0)
    assert result.factorization == "ldl"


def test_spd_workspace_counts_runtime_fallbacks():
    problem = arch_problem(4)
    cache = FdmCache.new(problem, FactorizationStrategy.CHOLESKY)
    solve_fdm(cache, -np.ones(problem.topology.num_edges), problem, None)
    assert cache.fallback_count == 1
    assert cache.solve_count == 1
    solve_fdm(cache, np.ones(problem.topology.num_edges), problem, None)
    assert cache.fallback_count == 1


def test_variable_anchor_positions_are_substituted():
    problem = grid_problem(3, variable_anchors=[8])
    moved = np.array([[10.0, 10.0, 2.0]])
    xn = fixed_positions(problem, moved)
    row = problem.topology.fixed_row_of(8)
    np.testing.assert_array_equal(xn[row], moved[0])

    cache = FdmCache.new(problem)
    solve_fdm(cache, np.ones(problem.topology.num_edges), problem, moved)
    compute_geometry(cache, problem)
    np.testing.assert_array_equal(cache.xyz[8], moved[0])
