import argparse
import logging
import os
import sys

from core.exceptions import OptimizationCancelled, TheseusError
from geometry.geom_io import load_data, parse_problem, save_result
from runtime.fdm import solve_forward
from runtime.logging_config import setup_logging
from runtime.optimizer import optimize

logger = logging.getLogger("theseus")


def resolve_input_path(path: str) -> str:
    """Return a valid problem file path, allowing a path without extension."""
    if os.path.isfile(path):
        return path
    for ext in (".yaml", ".yml", ".json"):
        alt = path + ext
        if os.path.isfile(alt):
            return alt
    raise FileNotFoundError(f"Cannot find problem file '{path}' (.yaml/.yml/.json)")


def _log_progress(index, loss, xyz, q):
    logger.debug("eval %d: loss=%.6e  q in [%.3g, %.3g]", index, loss, q.min(), q.max())
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="Theseus FDM form-finding driver")
    parser.add_argument("-i", "--input", help="Input problem YAML/JSON file")
    parser.add_argument("-o", "--output", default=None, help="Output result JSON file")
    parser.add_argument(
        "--forward-only",
        action="store_true",
        help="Solve equilibrium at q_init and exit (no optimization).",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Override solver.max_iterations from the problem file.",
    )
    parser.add_argument(
        "--compact-output-json",
        action="store_true",
        help="Write output JSON in compact (single-line) form.",
    )
    parser.add_argument("--log", default=None, help="Optional log file")
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress console output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable verbose debug logging"
    )
    args = parser.parse_args(argv)

    if not args.input:
        print("No input file provided.", file=sys.stderr)
        return 1
    try:
        args.input = resolve_input_path(args.input)
    except FileNotFoundError as exc:
        print(exc, file=sys.stderr)
        return 1

    setup_logging(args.log, quiet=args.quiet, debug=args.debug)

    try:
        problem, state = parse_problem(load_data(args.input))
    except (TheseusError, ValueError) as exc:
        logger.error("Could not load %s: %s", args.input, exc)
        return 2

    if args.max_iterations is not None:
        problem.solver.set("max_iterations", int(args.max_iterations))

    topo = problem.topology
    logger.info(
        "Loaded %s: %d nodes (%d free), %d edges, %d objectives, %d variable anchors.",
        args.input,
        topo.num_nodes,
        topo.num_free,
        topo.num_edges,
        len(problem.objectives),
        problem.anchors.num_variable,
    )

    try:
        if args.forward_only:
            result = solve_forward(problem, state.force_densities, state.variable_anchor_positions)
        else:
            result = optimize(problem, state, progress_callback=_log_progress)
    except OptimizationCancelled as exc:
        logger.warning("Optimization cancelled: %s", exc)
        return 130
    except TheseusError as exc:
        logger.error("Optimization failed: %s", exc)
        return 2

    logger.info(
        "%s: %d iterations, best loss %s.",
        result.termination_reason,
        result.iterations,
        f"{min(result.loss_trace):.6e}" if result.loss_trace else "n/a",
    )

    if args.output:
        save_result(result, args.output, compact=args.compact_output_json)
        logger.info(f"Result saved to {args.output}")
    else:
        logger.info("No output file written.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
