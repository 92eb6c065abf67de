# geom_io.py
import json
import logging

import numpy as np
import yaml

from core.exceptions import ProblemDefinitionError
from geometry.network import NetworkTopology
from geometry.problem import AnchorInfo, Bounds, OptimizationState, Problem
from parameters.solver_options import SolverOptions
from runtime.objective_manager import ObjectiveModuleManager

logger = logging.getLogger("theseus")


def load_data(filename):
    """Load a problem description from a JSON or YAML file.

    Expected format:
    {
        "nodes": [[x, y, z], ...],
        "edges": [[i, j], ...],
        "fixed": [i, ...],
        "variable_anchors": [i, ...],          # optional, subset of "fixed"
        "loads": [px, py, pz] or [[px, py, pz], ...],
        "q_init": 1.0 or [q, ...],
        "bounds": {"lower": 0.1, "upper": 100.0},
        "objectives": [{"type": "target_xyz", "weight": 1.0, ...}, ...],
        "solver": {"max_iterations": 500, ...}
    }"""
    filename_str = str(filename)
    with open(filename_str, "r") as f:
        if filename_str.endswith((".yaml", ".yml")):
            data = yaml.safe_load(f)
        elif filename_str.endswith(".json"):
            data = json.load(f)
        else:
            logger.error(f"Unsupported file format for: {filename_str}")
            raise ValueError(f"Unsupported file format for: {filename_str}")

    return data


def _float_array(value, key):
    """Float array from YAML data, accepting numeric strings such as '1e-3'."""
    def _coerce(v):
        if isinstance(v, (list, tuple)):
            return [_coerce(x) for x in v]
        if isinstance(v, str):
            try:
                return float(v.strip())
            except ValueError:
                raise ProblemDefinitionError(f"{key}: {v!r} is not numeric") from None
        return v

    try:
        return np.asarray(_coerce(value), dtype=float)
    except (TypeError, ValueError) as exc:
        raise ProblemDefinitionError(f"{key}: {exc}") from exc


def _per_edge(value, num_edges, key, default):
    if value is None:
        value = default
    arr = _float_array(value, key).reshape(-1)
    if arr.size == 1:
        return np.full(num_edges, float(arr[0]))
    if arr.size != num_edges:
        raise ProblemDefinitionError(
            f"{key} needs 1 or {num_edges} values; got {arr.size}"
        )
    return arr


def parse_problem(data: dict):
    """Build ``(Problem, OptimizationState)`` from a loaded problem mapping."""
    if not isinstance(data, dict):
        raise ProblemDefinitionError("problem file must contain a mapping")
    for key in ("nodes", "edges", "fixed"):
        if key not in data:
            raise ProblemDefinitionError(f"problem file is missing '{key}'")

    nodes = _float_array(data["nodes"], "nodes")
    if nodes.ndim != 2 or nodes.shape[1] != 3:
        raise ProblemDefinitionError(f"nodes must be a list of [x, y, z]; got shape {nodes.shape}")

    topology = NetworkTopology.from_edges(data["edges"], nodes.shape[0], data["fixed"])
    ne = topology.num_edges

    loads = _float_array(data.get("loads", [0.0, 0.0, 0.0]), "loads")
    if loads.size == 3:
        loads = np.tile(loads.reshape(1, 3), (topology.num_free, 1))
    fixed_positions = nodes[topology.fixed_node_indices]

    anchor_nodes = data.get("variable_anchors") or []
    if anchor_nodes:
        anchors = AnchorInfo.from_nodes(topology, anchor_nodes, fixed_positions)
    else:
        anchors = AnchorInfo.all_fixed(fixed_positions)

    bounds_cfg = data.get("bounds") or {}
    bounds = Bounds(
        _per_edge(bounds_cfg.get("lower"), ne, "bounds.lower", -np.inf),
        _per_edge(bounds_cfg.get("upper"), ne, "bounds.upper", np.inf),
    )

    solver = SolverOptions(data.get("solver") or {})

    configs = data.get("objectives") or []
    manager = ObjectiveModuleManager([c.get("type") for c in configs if isinstance(c, dict)])
    objectives = manager.build_all(configs, topology, node_positions=nodes)
    if not objectives:
        logger.warning("No objectives defined; the optimizer will only feel the bound barrier.")

    problem = Problem(
        topology=topology,
        free_node_loads=loads,
        fixed_node_positions=fixed_positions,
        anchors=anchors,
        objectives=objectives,
        bounds=bounds,
        solver=solver,
    )
    q_init = _per_edge(data.get("q_init"), ne, "q_init", 1.0)
    state = OptimizationState(q_init, anchors.initial_positions())
    return problem, state


def save_result(result, path="outputs/result.json", *, compact=False):
    """Write a ``SolverResult`` as JSON."""
    data = result.to_dict()
    with open(path, "w") as f:
        if compact:
            json.dump(data, f, separators=(",", ":"), ensure_ascii=False)
        else:
            json.dump(data, f, indent=4, ensure_ascii=False)
