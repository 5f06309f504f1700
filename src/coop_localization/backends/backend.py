"""
Abstract interface to the graph optimization back-end.

The front-end only ever talks to the solver through this narrow contract:
register parameters, add vertices and edges, run a bounded optimization and
read poses back. Vertex state is owned by the back-end; the front-end holds
Key handles.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence
import numpy as np
from numpy import ndarray

from ..types.key import Key
from ..types.edges import Edge


class GraphBackend(ABC):
    """
    Abstract base class for graph optimization back-ends.
    Subclasses must implement the core methods for their specific solver.
    """

    def __init__(self):
        self.edges: List[Edge] = []
        self._num_vertices = 0

    @property
    def num_vertices(self) -> int:
        """Number of vertices added so far."""
        return self._num_vertices

    @property
    def num_edges(self) -> int:
        """Number of edges added so far."""
        return len(self.edges)

    def add_edge(self, edge: Edge) -> None:
        """
        Add an edge to the graph.

        Args:
            edge: The edge to be added.
        """
        self._specific_add_edge(edge)
        self.edges.append(edge)

    def add_vertex(self, initial_estimate: ndarray, fixed: bool = False) -> Key:
        """
        Add a pose vertex to the graph.

        Args:
            initial_estimate: 4x4 homogeneous transformation used as the initial guess.
            fixed: If True the vertex is pinned at the initial estimate.

        Returns:
            The handle of the new vertex.
        """
        key = Key.from_parts("X", self._num_vertices)
        self._specific_add_vertex(key, np.asarray(initial_estimate, dtype=float), fixed)
        self._num_vertices += 1
        return key

    def read_path(self, keys: Sequence[Key]) -> List[ndarray]:
        """
        Read the current estimate of an ordered sequence of vertices.

        Raises:
            NonFiniteOptimizationResult: any of the poses is not finite
        """
        return [self.read_pose(key) for key in keys]

    @abstractmethod
    def add_parameter(self, parameter_id: int, offset: ndarray = None) -> None:
        """
        Register a fixed reference-frame offset that priors can be expressed in.

        Args:
            parameter_id: The id priors refer to.
            offset: 4x4 transformation of the offset frame (identity if omitted).
        """
        raise NotImplementedError(
            "[add_parameter] This method should be implemented by subclasses."
        )

    @abstractmethod
    def _specific_add_vertex(self, key: Key, initial_estimate: ndarray, fixed: bool) -> None:
        raise NotImplementedError(
            "[_specific_add_vertex] This method should be implemented by subclasses."
        )

    @abstractmethod
    def _specific_add_edge(self, edge: Edge) -> None:
        raise NotImplementedError(
            "[_specific_add_edge] This method should be implemented by subclasses."
        )

    @abstractmethod
    def set_estimate(self, key: Key, estimate: ndarray) -> None:
        """
        Overwrite the current estimate of a vertex (used to seed initial guesses).
        """
        raise NotImplementedError(
            "[set_estimate] This method should be implemented by subclasses."
        )

    @abstractmethod
    def optimize(self, max_iterations: int) -> bool:
        """
        Run a bounded number of optimizer iterations over the whole graph.

        Returns:
            True if the optimizer produced a finite result that was adopted.
        """
        raise NotImplementedError(
            "[optimize] This method should be implemented by subclasses."
        )

    @abstractmethod
    def read_pose(self, key: Key) -> ndarray:
        """
        Read the current estimate of a vertex as a 4x4 transformation.

        Raises:
            NonFiniteOptimizationResult: the pose is not finite
        """
        raise NotImplementedError(
            "[read_pose] This method should be implemented by subclasses."
        )

    @abstractmethod
    def error(self) -> float:
        """Total weighted error of the graph at the current estimate."""
        raise NotImplementedError(
            "[error] This method should be implemented by subclasses."
        )
