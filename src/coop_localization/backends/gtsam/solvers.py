"""
GTSAM optimization solvers.

This module provides functions to solve factor graphs with GTSAM's
Levenberg-Marquardt optimizer and to check the results.
"""

import logging
import numpy as np

from gtsam import (
    NonlinearFactorGraph,
    Values,
    LevenbergMarquardtOptimizer,
    LevenbergMarquardtParams,
    Symbol,
)

logger = logging.getLogger(__name__)


def diagnose_optimization_problem(graph: NonlinearFactorGraph, initial_vals: Values) -> dict:
    """
    Collect basic diagnostics about a factor graph at the given values.

    Args:
        graph: The factor graph to diagnose
        initial_vals: Values the factors are evaluated at

    Returns:
        Dictionary with factor/variable counts, total error and NaN factor count
    """
    diagnostics = {
        "num_factors": graph.size(),
        "num_vars": initial_vals.size(),
    }

    graph_keys = set(graph.keyVector())
    init_keys = set(initial_vals.keys())
    diagnostics["missing_in_initial"] = [Symbol(k).string() for k in sorted(graph_keys - init_keys)[:20]]
    diagnostics["unused_in_graph"] = [Symbol(k).string() for k in sorted(init_keys - graph_keys)[:20]]

    total_error = 0.0
    nan_errors = 0
    if not diagnostics["missing_in_initial"]:
        for i in range(graph.size()):
            factor = graph.at(i)
            if factor is None:
                continue
            e = factor.error(initial_vals)
            if np.isnan(e):
                nan_errors += 1
            else:
                total_error += e
    diagnostics["total_error"] = total_error
    diagnostics["nan_errors"] = nan_errors
    return diagnostics


def values_are_finite(values: Values) -> bool:
    """True if every Pose3 in `values` has finite entries."""
    for key in values.keys():
        if not np.all(np.isfinite(values.atPose3(key).matrix())):
            return False
    return True


def solve_with_levenberg_marquardt(
    graph: NonlinearFactorGraph,
    initial_vals: Values,
    max_iterations: int,
) -> Values:
    """
    Solve a factor graph using Levenberg-Marquardt optimization.

    Args:
        graph: The factor graph to optimize.
        initial_vals: Initial values for all variables.
        max_iterations: Hard cap on the number of LM iterations.

    Returns:
        Optimized Values.

    Raises:
        ValueError: If variables in the graph are not initialized.
        RuntimeError: If optimization fails.
    """

    def _check_all_variables_have_initialization():
        """Verify that all graph variables are initialized."""
        graph_var_set = set(graph.keyVector())
        init_vals_var_set = set(initial_vals.keys())

        in_graph_not_init_vals = graph_var_set - init_vals_var_set
        in_init_vals_not_graph = init_vals_var_set - graph_var_set

        if len(in_graph_not_init_vals) > 0:
            graph_vars_as_symbols = [Symbol(key).string() for key in in_graph_not_init_vals]
            raise ValueError(
                f"Variables in graph but not in initial values: {graph_vars_as_symbols}"
            )

        if len(in_init_vals_not_graph) > 0:
            init_vals_vars_as_symbols = [Symbol(key).string() for key in in_init_vals_not_graph]
            logger.warning(
                f"Variables in initial values but not in graph: {init_vals_vars_as_symbols}"
            )

    _check_all_variables_have_initialization()

    params = LevenbergMarquardtParams()
    params.setMaxIterations(max_iterations)

    initial_error = graph.error(initial_vals)
    optimizer = LevenbergMarquardtOptimizer(graph, initial_vals, params)
    result = optimizer.optimize()

    final_error = graph.error(result)
    logger.debug(
        f"Levenberg-Marquardt complete after {optimizer.iterations()} iterations: "
        f"initial={initial_error:.6f}, final={final_error:.6f}"
    )
    return result
