"""
GTSAM-based graph back-end.

This module provides the GtsamBackend class, which implements the
GraphBackend interface using GTSAM's factor graph optimization.
"""
import logging
import numpy as np

from gtsam import NonlinearFactorGraph, Values, PriorFactorPose3

from typing import Dict, Optional

from ..backend import GraphBackend
from ...errors import BackendInitializationError, NonFiniteOptimizationResult
from ...types.key import Key
from ...types.edges import Edge, PosePriorEdge
from ...utils.transformations import is_finite_transformation

from .conversions import (
    get_gtsam_symbol_from_key,
    get_matrix_from_pose3,
    get_pose3_from_matrix,
)
from .factors import get_factor_from_edge, get_pinned_noise
from .solvers import (
    diagnose_optimization_problem,
    solve_with_levenberg_marquardt,
    values_are_finite,
)

logger = logging.getLogger(__name__)


class GtsamBackend(GraphBackend):
    """
    A concrete implementation of the GraphBackend interface using GTSAM.

    Holds the factor graph and the current estimate. Every call to optimize
    re-solves the whole graph starting from the current estimate.
    """

    def __init__(
        self,
        huber_threshold: Optional[float] = 1.0,
        fixed_vertex_variance: float = 1e-6,
    ):
        """
        Initialize the GTSAM back-end.

        Args:
            huber_threshold: Huber kernel threshold applied to measurement edges
                (None disables the robust kernel).
            fixed_vertex_variance: Variance of the prior used to pin fixed vertices.

        Raises:
            BackendInitializationError: If the solver settings are invalid.
        """
        super().__init__()
        if huber_threshold is not None and huber_threshold <= 0:
            raise BackendInitializationError(
                f"Huber threshold must be positive, got {huber_threshold}"
            )
        if fixed_vertex_variance <= 0:
            raise BackendInitializationError(
                f"Fixed vertex variance must be positive, got {fixed_vertex_variance}"
            )

        self.factor_graph = NonlinearFactorGraph()
        self.gtsam_estimate = Values()
        self.huber_threshold = huber_threshold
        self.fixed_vertex_variance = fixed_vertex_variance
        self.parameters: Dict[int, np.ndarray] = {}

    def add_parameter(self, parameter_id: int, offset: np.ndarray = None) -> None:
        if parameter_id in self.parameters:
            raise ValueError(f"Parameter {parameter_id} already registered")
        self.parameters[parameter_id] = np.eye(4) if offset is None else np.asarray(offset, dtype=float)
        logger.debug(f"Registered reference frame offset {parameter_id}")

    def _specific_add_vertex(self, key: Key, initial_estimate: np.ndarray, fixed: bool) -> None:
        sym = get_gtsam_symbol_from_key(key)
        pose_init = get_pose3_from_matrix(initial_estimate)
        self.gtsam_estimate.insert(sym, pose_init)

        if fixed:
            prior = PriorFactorPose3(sym, pose_init, get_pinned_noise(self.fixed_vertex_variance))
            self.factor_graph.push_back(prior)

    def _specific_add_edge(self, edge: Edge) -> None:
        offset = None
        if isinstance(edge, PosePriorEdge):
            if edge.parameter_id not in self.parameters:
                raise ValueError(f"Prior refers to unregistered parameter {edge.parameter_id}")
            offset = self.parameters[edge.parameter_id]
        factor = get_factor_from_edge(edge, self.huber_threshold, offset)
        self.factor_graph.push_back(factor)

    def set_estimate(self, key: Key, estimate: np.ndarray) -> None:
        sym = get_gtsam_symbol_from_key(key)
        self.gtsam_estimate.update(sym, get_pose3_from_matrix(estimate))

    def optimize(self, max_iterations: int) -> bool:
        """
        Re-solve the whole graph and adopt the result if it is finite.
        """
        if self.factor_graph.size() == 0:
            return True

        try:
            result = solve_with_levenberg_marquardt(
                self.factor_graph, self.gtsam_estimate, max_iterations
            )
        except (RuntimeError, ValueError) as e:
            logger.error(f"Failed to run LevenbergMarquardtOptimizer: {e}")
            logger.error(f"Graph diagnostics: {diagnose_optimization_problem(self.factor_graph, self.gtsam_estimate)}")
            return False

        if not values_are_finite(result):
            logger.error("Optimization produced non-finite values, keeping previous estimate")
            return False

        self.gtsam_estimate = result
        return True

    def read_pose(self, key: Key) -> np.ndarray:
        sym = get_gtsam_symbol_from_key(key)
        if not self.gtsam_estimate.exists(sym):
            raise KeyError(f"Vertex {key} not in the graph")
        pose = get_matrix_from_pose3(self.gtsam_estimate.atPose3(sym))  # type: ignore
        if not is_finite_transformation(pose):
            raise NonFiniteOptimizationResult(f"Vertex {key} has a non-finite estimate")
        return pose

    def error(self) -> float:
        return float(self.factor_graph.error(self.gtsam_estimate))
