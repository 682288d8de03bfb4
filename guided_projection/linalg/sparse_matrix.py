"""
Common interface of the sparse matrix formats.
"""

from typing import Iterator, Tuple

import numpy as np

from .dictionary_of_keys import DictionaryOfKeys
from ..errors import DimensionMismatchError


class SparseMatrix:
    """
    Base class of sparse matrices storing only their non-zero entries.

    Subclasses provide `non_zeros()` and `at()`; every other read-only view
    (dense array, dictionary of keys, element access) derives from them.
    """

    # Keep numpy from broadcasting over sparse operands in mixed expressions
    __array_ufunc__ = None

    def __init__(self, row_count: int, column_count: int):
        if row_count < 0 or column_count < 0:
            raise ValueError(f"Matrix shape must be non-negative, got ({row_count}, {column_count})")
        self.row_count = int(row_count)
        self.column_count = int(column_count)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.row_count, self.column_count

    @property
    def nnz(self) -> int:
        raise NotImplementedError

    def non_zeros(self) -> Iterator[Tuple[int, int, float]]:
        raise NotImplementedError

    def at(self, row: int, column: int) -> float:
        raise NotImplementedError

    def _check_element(self, row: int, column: int):
        if not (0 <= row < self.row_count and 0 <= column < self.column_count):
            raise IndexError(f"Element ({row}, {column}) outside a {self.row_count}x{self.column_count} matrix")

    def __getitem__(self, key: Tuple[int, int]) -> float:
        row, column = key
        return self.at(row, column)

    def to_array(self) -> np.ndarray:
        array = np.zeros((self.row_count, self.column_count))
        for row, column, value in self.non_zeros():
            array[row, column] += value
        return array

    def to_dok(self) -> DictionaryOfKeys:
        dok = DictionaryOfKeys()
        for row, column, value in self.non_zeros():
            dok.add(value, row, column)
        return dok

    def _check_same_shape(self, other: "SparseMatrix", operation: str):
        if self.shape != tuple(other.shape):
            raise DimensionMismatchError(
                f"Matrix shapes do not allow {operation}: {self.shape} and {tuple(other.shape)}")

    def _check_product(self, other_rows: int, operation: str = "multiplication"):
        if self.column_count != other_rows:
            raise DimensionMismatchError(
                f"Matrix sizes do not allow {operation}: {self.shape} with {other_rows} rows")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.row_count}x{self.column_count}, nnz={self.nnz})"
