"""
Compressed-row and compressed-column sparse matrices.

Both formats share one representation: a `pointers` array of length
major_count + 1, and parallel `indices` / `values` arrays. For CompressedRow the
major axis is the row, for CompressedColumn the column. Within every major span
the minor indices are sorted and unique.

Arithmetic between the two formats converts the right operand to the format of
the left one and runs a single merge or product kernel; results take the format
of the left operand.
"""

import numbers
from typing import Iterator, Tuple

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from .dictionary_of_keys import DictionaryOfKeys
from .sparse_matrix import SparseMatrix
from .vectors import DenseVector, SparseVector, _dense_operand
from ..errors import DimensionMismatchError, SingularSystemError
from ..logging_config import get_logger

logger = get_logger(__name__)


def _compress(major_count, minor_count, majors, minors, values):
    """
    Sort (major, minor, value) entries into compressed arrays, summing duplicates.

    Explicit zeros are kept; use `clean` to drop them.
    """
    majors = np.asarray(majors, dtype=np.int64)
    minors = np.asarray(minors, dtype=np.int64)
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return np.zeros(major_count + 1, dtype=np.int64), np.zeros(0, dtype=np.int64), np.zeros(0)

    keys, inverse = np.unique(majors * minor_count + minors, return_inverse=True)
    summed = np.bincount(inverse.ravel(), weights=values, minlength=keys.size)
    out_majors = keys // minor_count
    pointers = np.zeros(major_count + 1, dtype=np.int64)
    np.cumsum(np.bincount(out_majors, minlength=major_count), out=pointers[1:])
    return pointers, keys % minor_count, summed


def _expand_majors(pointers):
    return np.repeat(np.arange(pointers.shape[0] - 1, dtype=np.int64), np.diff(pointers))


def _gustavson(left, right):
    """
    Row-by-row product of two operands given as (pointers, indices, values) in
    the same major orientation, e.g. CSR times CSR.

    Every stored entry (i, k) of the left operand is expanded against the k-th
    major span of the right operand; the products are then reduced by key.
    Returns the (majors, minors, values) entries of the product, unsorted.
    """
    left_pointers, left_indices, left_values = left
    right_pointers, right_indices, right_values = right

    counts = np.diff(right_pointers)[left_indices]
    total = int(counts.sum())
    if total == 0:
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty, np.zeros(0)

    out_majors = np.repeat(_expand_majors(left_pointers), counts)
    scale = np.repeat(left_values, counts)
    run_starts = np.repeat(np.cumsum(counts) - counts, counts)
    positions = np.repeat(right_pointers[left_indices], counts) + np.arange(total) - run_starts
    return out_majors, right_indices[positions], scale * right_values[positions]


class CompressedMatrix(SparseMatrix):
    """
    Shared implementation of the compressed formats.

    Attributes:
        pointers: Start offset of every major span, plus the total entry count
        indices: Minor index of every stored entry
        values: Value of every stored entry
    """

    _scipy_format = None

    def __init__(self, row_count: int, column_count: int, pointers, indices, values, check: bool = True):
        super().__init__(row_count, column_count)
        self.pointers = np.asarray(pointers, dtype=np.int64)
        self.indices = np.asarray(indices, dtype=np.int64)
        self.values = np.asarray(values, dtype=float)
        if check:
            self._validate()

    # Orientation

    @property
    def major_count(self) -> int:
        raise NotImplementedError

    @property
    def minor_count(self) -> int:
        raise NotImplementedError

    def _rows_columns(self, majors, minors) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def _validate(self):
        if self.pointers.shape != (self.major_count + 1,):
            raise DimensionMismatchError(
                f"Expected {self.major_count + 1} pointers, got {self.pointers.shape[0]}")
        if self.indices.shape != self.values.shape or self.indices.ndim != 1:
            raise DimensionMismatchError(
                f"Index and value arrays differ: {self.indices.shape} and {self.values.shape}")
        if self.pointers[0] != 0 or self.pointers[-1] != self.indices.shape[0]:
            raise ValueError("Pointers must start at 0 and end at the number of stored entries")
        if np.any(np.diff(self.pointers) < 0):
            raise ValueError("Pointers must be non-decreasing")
        if self.indices.size == 0:
            return
        if self.indices.min() < 0 or self.indices.max() >= self.minor_count:
            raise IndexError(f"Stored index outside [0, {self.minor_count})")
        majors = _expand_majors(self.pointers)
        ordered = (majors[1:] != majors[:-1]) | (self.indices[1:] > self.indices[:-1])
        if not np.all(ordered):
            raise ValueError("Indices within a span must be sorted and unique")

    # Construction

    @classmethod
    def _from_entries(cls, row_count, column_count, rows, columns, values):
        raise NotImplementedError

    @classmethod
    def from_triplets(cls, values, rows, columns, row_count: int = None, column_count: int = None):
        """
        Build from parallel (value, row, column) sequences; duplicates are summed.

        The shape defaults to the smallest one holding every entry.
        """
        values = np.asarray(values, dtype=float).ravel()
        rows = np.asarray(rows, dtype=np.int64).ravel()
        columns = np.asarray(columns, dtype=np.int64).ravel()
        if not (values.size == rows.size == columns.size):
            raise DimensionMismatchError(
                f"Triplet sequences differ in length: values({values.size}), rows({rows.size}), columns({columns.size})")
        if row_count is None:
            row_count = int(rows.max()) + 1 if rows.size else 0
        if column_count is None:
            column_count = int(columns.max()) + 1 if columns.size else 0
        if rows.size and (rows.min() < 0 or rows.max() >= row_count):
            raise IndexError(f"Row index outside [0, {row_count})")
        if columns.size and (columns.min() < 0 or columns.max() >= column_count):
            raise IndexError(f"Column index outside [0, {column_count})")
        return cls._from_entries(row_count, column_count, rows, columns, values)

    @classmethod
    def from_dok(cls, dok: DictionaryOfKeys, row_count: int = None, column_count: int = None):
        values, rows, columns = dok.to_triplets()
        return cls.from_triplets(values, rows, columns, row_count, column_count)

    @classmethod
    def from_array(cls, array, tolerance: float = 0.0):
        array = np.asarray(array, dtype=float)
        if array.ndim != 2:
            raise DimensionMismatchError(f"Expected a two-dimensional array, got shape {array.shape}")
        rows, columns = np.nonzero(np.abs(array) > tolerance)
        return cls._from_entries(array.shape[0], array.shape[1], rows, columns, array[rows, columns])

    @classmethod
    def zero(cls, row_count: int, column_count: int):
        empty = np.zeros(0, dtype=np.int64)
        return cls._from_entries(row_count, column_count, empty, empty, np.zeros(0))

    @classmethod
    def identity(cls, size: int):
        diagonal = np.arange(size, dtype=np.int64)
        return cls._from_entries(size, size, diagonal, diagonal, np.ones(size))

    @classmethod
    def from_scipy(cls, matrix):
        """Copy any scipy.sparse matrix into this format."""
        constructor = scipy.sparse.csr_matrix if cls._scipy_format == 'csr' else scipy.sparse.csc_matrix
        converted = constructor(matrix, copy=True)
        converted.sum_duplicates()
        converted.sort_indices()
        return cls(converted.shape[0], converted.shape[1],
                   converted.indptr.copy(), converted.indices.copy(), converted.data.astype(float))

    def to_scipy(self):
        constructor = scipy.sparse.csr_matrix if self._scipy_format == 'csr' else scipy.sparse.csc_matrix
        return constructor((self.values.copy(), self.indices.copy(), self.pointers.copy()), shape=self.shape)

    def copy(self):
        return type(self)(self.row_count, self.column_count,
                          self.pointers.copy(), self.indices.copy(), self.values.copy(), check=False)

    # Read access

    @property
    def nnz(self) -> int:
        return int(self.values.shape[0])

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (values, rows, columns) arrays in storage order."""
        rows, columns = self._rows_columns(_expand_majors(self.pointers), self.indices)
        return self.values.copy(), rows, columns

    def non_zeros(self) -> Iterator[Tuple[int, int, float]]:
        values, rows, columns = self.triplets()
        for row, column, value in zip(rows.tolist(), columns.tolist(), values.tolist()):
            yield row, column, value

    def _find(self, major: int, minor: int) -> int:
        start, end = self.pointers[major], self.pointers[major + 1]
        position = start + int(np.searchsorted(self.indices[start:end], minor))
        if position < end and self.indices[position] == minor:
            return position
        return -1

    def to_array(self) -> np.ndarray:
        array = np.zeros(self.shape)
        values, rows, columns = self.triplets()
        array[rows, columns] = values
        return array

    def to_dok(self) -> DictionaryOfKeys:
        values, rows, columns = self.triplets()
        return DictionaryOfKeys.from_triplets(values, rows, columns)

    def to_compressed_row(self) -> "CompressedRow":
        values, rows, columns = self.triplets()
        return CompressedRow._from_entries(self.row_count, self.column_count, rows, columns, values)

    def to_compressed_column(self) -> "CompressedColumn":
        values, rows, columns = self.triplets()
        return CompressedColumn._from_entries(self.row_count, self.column_count, rows, columns, values)

    def _same_format(self, other: SparseMatrix) -> "CompressedMatrix":
        if type(other) is type(self):
            return other
        if isinstance(other, CompressedMatrix):
            values, rows, columns = other.triplets()
        else:
            values, rows, columns = other.to_dok().to_triplets()
        return self._from_entries(other.row_count, other.column_count, rows, columns, values)

    def transpose(self):
        """Return the transpose in the same format."""
        values, rows, columns = self.triplets()
        return self._from_entries(self.column_count, self.row_count, columns, rows, values)

    @property
    def T(self):
        return self.transpose()

    def clean(self, tolerance: float):
        """Drop, in place, every stored entry whose magnitude is below the tolerance."""
        keep = np.abs(self.values) >= tolerance
        if np.all(keep):
            return
        majors = _expand_majors(self.pointers)[keep]
        self.indices = self.indices[keep]
        self.values = self.values[keep]
        self.pointers = np.zeros(self.major_count + 1, dtype=np.int64)
        np.cumsum(np.bincount(majors, minlength=self.major_count), out=self.pointers[1:])

    # Arithmetic

    def _merge(self, other, sign: float, operation: str):
        self._check_same_shape(other, operation)
        other = self._same_format(other)
        majors = np.concatenate([_expand_majors(self.pointers), _expand_majors(other.pointers)])
        minors = np.concatenate([self.indices, other.indices])
        values = np.concatenate([self.values, sign * other.values])
        pointers, indices, merged = _compress(self.major_count, self.minor_count, majors, minors, values)
        return type(self)(self.row_count, self.column_count, pointers, indices, merged, check=False)

    def __add__(self, other):
        if isinstance(other, np.ndarray):
            if other.shape != self.shape:
                raise DimensionMismatchError(f"Matrix shapes do not allow addition: {self.shape} and {other.shape}")
            return self.to_array() + other
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return self._merge(other, 1.0, "addition")

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, np.ndarray):
            if other.shape != self.shape:
                raise DimensionMismatchError(f"Matrix shapes do not allow subtraction: {self.shape} and {other.shape}")
            return self.to_array() - other
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return self._merge(other, -1.0, "subtraction")

    def __rsub__(self, other):
        if isinstance(other, np.ndarray):
            return (-self).__add__(other)
        return NotImplemented

    def _scaled(self, factor: float):
        return type(self)(self.row_count, self.column_count,
                          self.pointers.copy(), self.indices.copy(), self.values * factor, check=False)

    def __neg__(self):
        return self._scaled(-1.0)

    def __mul__(self, factor):
        if not isinstance(factor, numbers.Number):
            return NotImplemented
        return self._scaled(float(factor))

    __rmul__ = __mul__

    def __truediv__(self, divisor):
        if not isinstance(divisor, numbers.Number):
            return NotImplemented
        if divisor == 0:
            raise ZeroDivisionError("Division of a matrix by zero")
        return self._scaled(1.0 / float(divisor))

    def _gather_accumulate(self, vector, transposed: bool):
        """
        Product with a vector, as A.x or, when transposed, A^T.x.

        The vector is gathered along one axis of the stored entries and the
        products accumulated along the other.
        """
        majors = _expand_majors(self.pointers)
        rows, columns = self._rows_columns(majors, self.indices)
        gather, scatter = (rows, columns) if transposed else (columns, rows)
        size_in, size_out = (self.row_count, self.column_count) if transposed else (self.column_count, self.row_count)

        if isinstance(vector, SparseVector):
            if vector.size != size_in:
                raise DimensionMismatchError(
                    f"Matrix {self.shape} cannot multiply a vector of size {vector.size}")
            dense = vector.to_array()
            touched = np.isin(gather, vector.indices)
            contributions = self.values[touched] * dense[gather[touched]]
            out_indices, inverse = np.unique(scatter[touched], return_inverse=True)
            sums = np.bincount(inverse.ravel(), weights=contributions, minlength=out_indices.size)
            return SparseVector(size_out, out_indices.tolist(), sums.tolist())

        dense = _dense_operand(vector, size_in, "matrix-vector product")
        result = np.bincount(scatter, weights=self.values * dense[gather], minlength=size_out)
        return DenseVector._wrap(result.astype(float))

    def _csr_arrays(self):
        raise NotImplementedError

    def _csc_arrays(self):
        raise NotImplementedError

    def multiply(self, other):
        """
        Product with a matrix or a vector.

        Matrices give a matrix in this operand's format, a SparseVector gives a
        SparseVector and any dense vector gives a DenseVector.
        """
        if isinstance(other, SparseMatrix):
            self._check_product(other.row_count)
            if not isinstance(other, CompressedMatrix):
                other = self._same_format(other)
            return self._multiply_matrix(other)
        if isinstance(other, (DenseVector, SparseVector)) or isinstance(other, (np.ndarray, list, tuple)):
            return self._gather_accumulate(other, transposed=False)
        raise TypeError(f"Cannot multiply a sparse matrix by {type(other).__name__}")

    def _multiply_matrix(self, other: "CompressedMatrix"):
        raise NotImplementedError

    def __matmul__(self, other):
        if isinstance(other, numbers.Number):
            return NotImplemented
        return self.multiply(other)

    def transpose_multiply(self, other):
        """Product of this matrix's transpose with a matrix or a vector."""
        if isinstance(other, SparseMatrix):
            if self.row_count != other.row_count:
                raise DimensionMismatchError(
                    f"Matrix sizes do not allow transpose multiplication: {self.shape} and {other.shape}")
            return self.transpose().multiply(other)
        return self._gather_accumulate(other, transposed=True)

    def transpose_multiply_self(self):
        """Return A^T.A in this matrix's format."""
        rows_pointers, rows_indices, rows_values = self._csr_arrays()
        columns_pointers, columns_indices, columns_values = self._csc_arrays()
        # The compressed-column arrays of A are the compressed-row arrays of A^T
        majors, minors, values = _gustavson((columns_pointers, columns_indices, columns_values),
                                            (rows_pointers, rows_indices, rows_values))
        return self._from_entries(self.column_count, self.column_count, majors, minors, values)

    # Linear solve

    def solve_positive_definite(self, rhs) -> DenseVector:
        """
        Solve A.x = rhs for a symmetric positive-definite A.

        Factorises with the sparse LU of scipy in symmetric mode (diagonal
        pivoting on a symmetric ordering), so every pivot of an SPD matrix is
        positive. A failed factorisation, a non-positive pivot or a non-finite
        solution raise SingularSystemError.
        """
        if self.row_count != self.column_count:
            raise DimensionMismatchError(f"Cannot solve with a non-square matrix {self.shape}")
        rhs = _dense_operand(rhs, self.row_count, "linear solve")
        if self.row_count == 0:
            return DenseVector.zero(0)

        try:
            factor = scipy.sparse.linalg.splu(
                self.to_scipy().tocsc(),
                permc_spec='MMD_AT_PLUS_A',
                diag_pivot_thresh=0.0,
                options=dict(SymmetricMode=True),
            )
        except RuntimeError as e:
            raise SingularSystemError(f"Sparse factorisation failed: {e}") from e

        pivots = factor.U.diagonal()
        if not np.all(pivots > 0):
            smallest = float(np.min(pivots))
            raise SingularSystemError(f"System is not positive definite (smallest pivot {smallest:.3e})")

        solution = factor.solve(rhs)
        if not np.all(np.isfinite(solution)):
            raise SingularSystemError("Linear solve produced non-finite values")
        logger.debug(f"Solved {self.row_count}x{self.row_count} system with {self.nnz} stored entries")
        return DenseVector(solution)


class CompressedRow(CompressedMatrix):
    """Compressed sparse row matrix: `pointers` span rows, `indices` are columns."""

    _scipy_format = 'csr'

    @property
    def major_count(self) -> int:
        return self.row_count

    @property
    def minor_count(self) -> int:
        return self.column_count

    def _rows_columns(self, majors, minors):
        return majors, minors

    @classmethod
    def _from_entries(cls, row_count, column_count, rows, columns, values):
        pointers, indices, merged = _compress(row_count, column_count, rows, columns, values)
        return cls(row_count, column_count, pointers, indices, merged, check=False)

    def at(self, row: int, column: int) -> float:
        self._check_element(row, column)
        position = self._find(row, column)
        return float(self.values[position]) if position >= 0 else 0.0

    def _csr_arrays(self):
        return self.pointers, self.indices, self.values

    def _csc_arrays(self):
        other = self.to_compressed_column()
        return other.pointers, other.indices, other.values

    def _multiply_matrix(self, other):
        if isinstance(other, CompressedColumn):
            return self._dot_columns(other)
        majors, minors, values = _gustavson(self._csr_arrays(), other._csr_arrays())
        return CompressedRow._from_entries(self.row_count, other.column_count, majors, minors, values)

    def _dot_columns(self, other: "CompressedColumn") -> "CompressedRow":
        """
        Row-times-column product: each output entry is the sparse dot product of
        a stored row of self and a stored column of other, both sorted on the
        shared inner index.
        """
        rows, columns, values = [], [], []
        row_spans = np.flatnonzero(np.diff(self.pointers))
        column_spans = np.flatnonzero(np.diff(other.pointers))
        for i in row_spans:
            row_indices = self.indices[self.pointers[i]:self.pointers[i + 1]]
            row_values = self.values[self.pointers[i]:self.pointers[i + 1]]
            for j in column_spans:
                column_indices = other.indices[other.pointers[j]:other.pointers[j + 1]]
                shared, left, right = np.intersect1d(row_indices, column_indices,
                                                     assume_unique=True, return_indices=True)
                if shared.size:
                    rows.append(i)
                    columns.append(j)
                    column_values = other.values[other.pointers[j]:other.pointers[j + 1]]
                    values.append(float(row_values[left] @ column_values[right]))
        return CompressedRow._from_entries(self.row_count, other.column_count, rows, columns, values)


class CompressedColumn(CompressedMatrix):
    """Compressed sparse column matrix: `pointers` span columns, `indices` are rows."""

    _scipy_format = 'csc'

    @property
    def major_count(self) -> int:
        return self.column_count

    @property
    def minor_count(self) -> int:
        return self.row_count

    def _rows_columns(self, majors, minors):
        return minors, majors

    @classmethod
    def _from_entries(cls, row_count, column_count, rows, columns, values):
        pointers, indices, merged = _compress(column_count, row_count, columns, rows, values)
        return cls(row_count, column_count, pointers, indices, merged, check=False)

    def at(self, row: int, column: int) -> float:
        self._check_element(row, column)
        position = self._find(column, row)
        return float(self.values[position]) if position >= 0 else 0.0

    def _csr_arrays(self):
        other = self.to_compressed_row()
        return other.pointers, other.indices, other.values

    def _csc_arrays(self):
        return self.pointers, self.indices, self.values

    def _multiply_matrix(self, other):
        other = self._same_format(other)
        # (A.B)^T = B^T.A^T, and compressed-column arrays of a matrix are the
        # compressed-row arrays of its transpose
        majors, minors, values = _gustavson(other._csc_arrays(), self._csc_arrays())
        return CompressedColumn._from_entries(self.row_count, other.column_count, minors, majors, values)
