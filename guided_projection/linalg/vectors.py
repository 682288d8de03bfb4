"""
Dense and sparse vectors used by the sparse matrix layer and the solver.

Mixed dense/sparse arithmetic returns a DenseVector; sparse/sparse arithmetic
stays sparse so downstream algebra is not densified needlessly.
"""

import numbers
from typing import Dict, Iterable, Iterator, Tuple

import numpy as np

from ..errors import DimensionMismatchError


def _check_size(left_size: int, right_size: int, operation: str):
    if left_size != right_size:
        raise DimensionMismatchError(
            f"Vector sizes do not allow {operation}: {left_size} and {right_size}")


class DenseVector:
    """Vector storing every component in a contiguous float array."""

    __array_ufunc__ = None

    def __init__(self, components):
        components = np.array(components, dtype=float)
        if components.ndim != 1:
            raise DimensionMismatchError(f"A dense vector needs one-dimensional components, got shape {components.shape}")
        self._components = components

    @classmethod
    def zero(cls, size: int) -> "DenseVector":
        return cls(np.zeros(size))

    @classmethod
    def _wrap(cls, array: np.ndarray) -> "DenseVector":
        vector = cls.__new__(cls)
        vector._components = array
        return vector

    @property
    def size(self) -> int:
        return self._components.shape[0]

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index):
        return self._components[index]

    def __setitem__(self, index, value):
        self._components[index] = value

    def __iter__(self) -> Iterator[float]:
        return iter(self._components.tolist())

    def to_array(self) -> np.ndarray:
        return self._components.copy()

    def __array__(self, dtype=None, copy=None):
        return self._components if dtype is None else self._components.astype(dtype)

    def norm(self) -> float:
        return float(np.linalg.norm(self._components))

    def __neg__(self) -> "DenseVector":
        return DenseVector._wrap(-self._components)

    def __add__(self, other) -> "DenseVector":
        return DenseVector._wrap(self._components + _dense_operand(other, self.size, "addition"))

    __radd__ = __add__

    def __sub__(self, other) -> "DenseVector":
        return DenseVector._wrap(self._components - _dense_operand(other, self.size, "subtraction"))

    def __rsub__(self, other) -> "DenseVector":
        return DenseVector._wrap(_dense_operand(other, self.size, "subtraction") - self._components)

    def __mul__(self, factor) -> "DenseVector":
        if not isinstance(factor, numbers.Number):
            return NotImplemented
        return DenseVector._wrap(self._components * float(factor))

    __rmul__ = __mul__

    def __truediv__(self, divisor) -> "DenseVector":
        if not isinstance(divisor, numbers.Number):
            return NotImplemented
        if divisor == 0:
            raise ZeroDivisionError("Division of a vector by zero")
        return DenseVector._wrap(self._components / float(divisor))

    def transpose_multiply(self, other) -> float:
        """Dot product with a dense or sparse vector."""
        if isinstance(other, SparseVector):
            return other.transpose_multiply(self)
        return float(self._components @ _dense_operand(other, self.size, "dot product"))

    dot = transpose_multiply

    def __repr__(self) -> str:
        return f"DenseVector({self._components.tolist()})"


class SparseVector:
    """
    Vector storing only its non-zero components as an index -> value mapping.

    Attributes:
        size: Number of components, zeros included
    """

    __array_ufunc__ = None

    def __init__(self, size: int, indices: Iterable[int] = (), values: Iterable[float] = ()):
        if size < 0:
            raise ValueError(f"Vector size must be non-negative, got {size}")
        self.size = int(size)
        self._components: Dict[int, float] = {}
        indices = list(indices)
        values = list(values)
        if len(indices) != len(values):
            raise DimensionMismatchError(f"Got {len(indices)} indices for {len(values)} values")
        for index, value in zip(indices, values):
            self[index] = self._components.get(int(index), 0.0) + float(value)

    @classmethod
    def from_dict(cls, size: int, components: Dict[int, float]) -> "SparseVector":
        return cls(size, components.keys(), components.values())

    @classmethod
    def from_array(cls, array, tolerance: float = 0.0) -> "SparseVector":
        array = np.asarray(array, dtype=float)
        nonzero = np.flatnonzero(np.abs(array) > tolerance)
        return cls(array.shape[0], nonzero.tolist(), array[nonzero].tolist())

    @classmethod
    def zero(cls, size: int) -> "SparseVector":
        return cls(size)

    @classmethod
    def standard_vector(cls, size: int, index: int) -> "SparseVector":
        return cls(size, [index], [1.0])

    @property
    def nnz(self) -> int:
        return len(self._components)

    def __len__(self) -> int:
        return self.size

    def _check_index(self, index: int) -> int:
        index = int(index)
        if not 0 <= index < self.size:
            raise IndexError(f"Index {index} out of range for a vector of size {self.size}")
        return index

    def __getitem__(self, index: int) -> float:
        return self._components.get(self._check_index(index), 0.0)

    def __setitem__(self, index: int, value: float):
        self._components[self._check_index(index)] = float(value)

    def __iter__(self) -> Iterator[float]:
        return iter(self.to_array().tolist())

    def non_zeros(self) -> Iterator[Tuple[int, float]]:
        """Iterate over stored (index, value) pairs in increasing index order."""
        for index in sorted(self._components):
            yield index, self._components[index]

    @property
    def indices(self) -> np.ndarray:
        return np.array(sorted(self._components), dtype=np.int64)

    @property
    def values(self) -> np.ndarray:
        return np.array([self._components[i] for i in sorted(self._components)], dtype=float)

    def to_array(self) -> np.ndarray:
        array = np.zeros(self.size)
        for index, value in self._components.items():
            array[index] = value
        return array

    def to_dense(self) -> DenseVector:
        return DenseVector._wrap(self.to_array())

    def clean(self, tolerance: float):
        """Remove stored components whose magnitude is below the tolerance."""
        small = [i for i, v in self._components.items() if abs(v) < tolerance]
        for index in small:
            del self._components[index]

    def norm(self) -> float:
        return float(np.sqrt(sum(v * v for v in self._components.values())))

    def __neg__(self) -> "SparseVector":
        return SparseVector.from_dict(self.size, {i: -v for i, v in self._components.items()})

    def _combine(self, other, sign: float, operation: str):
        if isinstance(other, SparseVector):
            _check_size(self.size, other.size, operation)
            components = dict(self._components)
            for index, value in other._components.items():
                components[index] = components.get(index, 0.0) + sign * value
            return SparseVector.from_dict(self.size, components)
        dense = _dense_operand(other, self.size, operation)
        return DenseVector._wrap(self.to_array() + sign * dense)

    def __add__(self, other):
        return self._combine(other, 1.0, "addition")

    __radd__ = __add__

    def __sub__(self, other):
        return self._combine(other, -1.0, "subtraction")

    def __rsub__(self, other):
        return (-self)._combine(other, 1.0, "subtraction")

    def __mul__(self, factor) -> "SparseVector":
        if not isinstance(factor, numbers.Number):
            return NotImplemented
        return SparseVector.from_dict(self.size, {i: v * float(factor) for i, v in self._components.items()})

    __rmul__ = __mul__

    def __truediv__(self, divisor) -> "SparseVector":
        if not isinstance(divisor, numbers.Number):
            return NotImplemented
        if divisor == 0:
            raise ZeroDivisionError("Division of a vector by zero")
        return SparseVector.from_dict(self.size, {i: v / float(divisor) for i, v in self._components.items()})

    def transpose_multiply(self, other) -> float:
        """Dot product with a dense or sparse vector, touching only stored components."""
        if isinstance(other, SparseVector):
            _check_size(self.size, other.size, "dot product")
            if other.nnz < self.nnz:
                return other.transpose_multiply(self)
            return float(sum(v * other._components.get(i, 0.0) for i, v in self._components.items()))
        dense = _dense_operand(other, self.size, "dot product")
        return float(sum(v * dense[i] for i, v in self._components.items()))

    dot = transpose_multiply

    def __eq__(self, other) -> bool:
        if not isinstance(other, SparseVector):
            return NotImplemented
        return self.size == other.size and self.to_array().tolist() == other.to_array().tolist()

    __hash__ = None

    def __repr__(self) -> str:
        return f"SparseVector(size={self.size}, nnz={self.nnz})"


def _dense_operand(other, size: int, operation: str) -> np.ndarray:
    """Return the components of a vector-like operand as a float array of the expected size."""
    if isinstance(other, DenseVector):
        array = other._components
    elif isinstance(other, SparseVector):
        array = other.to_array()
    else:
        array = np.asarray(other, dtype=float)
        if array.ndim != 1:
            raise DimensionMismatchError(f"Expected a one-dimensional operand for {operation}, got shape {array.shape}")
    _check_size(size, array.shape[0], operation)
    return array
