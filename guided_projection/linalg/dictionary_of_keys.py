"""
Dictionary-of-keys accumulator for building sparse matrices.

Entries are keyed by (row, column). Inserting an existing key adds to the
stored value, which is what assembly of a global system from many local
contributions needs. Iteration order is insertion order and carries no
meaning; compressed formats sort on conversion.
"""

from typing import Dict, Iterable, Iterator, Tuple

import numpy as np

from ..errors import DimensionMismatchError


class DictionaryOfKeys:
    """
    Sparse (row, column) -> value storage used during matrix construction.

    Attributes:
        values: Underlying mapping from (row, column) to value
    """

    def __init__(self, values: Dict[Tuple[int, int], float] = None):
        self.values: Dict[Tuple[int, int], float] = dict(values) if values else {}

    @classmethod
    def from_triplets(cls, values: Iterable[float], rows: Iterable[int], columns: Iterable[int]) -> "DictionaryOfKeys":
        """
        Build from parallel (value, row, column) sequences. Duplicate keys are summed.
        """
        values = list(values)
        rows = list(rows)
        columns = list(columns)
        if not (len(values) == len(rows) == len(columns)):
            raise DimensionMismatchError(
                f"Triplet sequences differ in length: values({len(values)}), rows({len(rows)}), columns({len(columns)})")

        dok = cls()
        for value, row, column in zip(values, rows, columns):
            dok.add(value, row, column)
        return dok

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Tuple[Tuple[int, int], float]]:
        return iter(self.values.items())

    def __contains__(self, key) -> bool:
        return key in self.values

    def __getitem__(self, key: Tuple[int, int]) -> float:
        return self.values.get(key, 0.0)

    def is_empty(self, row: int, column: int) -> bool:
        return (row, column) not in self.values

    def add(self, value: float, row: int, column: int):
        """Insert a value, merging it with any value already stored at (row, column)."""
        key = (int(row), int(column))
        if row < 0 or column < 0:
            raise IndexError(f"Negative index ({row}, {column}) in dictionary of keys")
        self.values[key] = self.values.get(key, 0.0) + float(value)

    def add_or_replace(self, value: float, row: int, column: int):
        if row < 0 or column < 0:
            raise IndexError(f"Negative index ({row}, {column}) in dictionary of keys")
        self.values[(int(row), int(column))] = float(value)

    def replace(self, value: float, row: int, column: int):
        key = (int(row), int(column))
        if key not in self.values:
            raise KeyError(f"No stored value at ({row}, {column})")
        self.values[key] = float(value)

    def remove(self, row: int, column: int):
        self.values.pop((int(row), int(column)), None)

    def clean(self, tolerance: float):
        """Remove every entry whose magnitude is below the tolerance."""
        small = [key for key, value in self.values.items() if abs(value) < tolerance]
        for key in small:
            del self.values[key]

    def max_row(self) -> int:
        return max((row for row, _ in self.values), default=-1)

    def max_column(self) -> int:
        return max((column for _, column in self.values), default=-1)

    def to_triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (values, rows, columns) arrays in storage order."""
        n = len(self.values)
        rows = np.empty(n, dtype=np.int64)
        columns = np.empty(n, dtype=np.int64)
        values = np.empty(n, dtype=float)
        for k, ((row, column), value) in enumerate(self.values.items()):
            rows[k] = row
            columns[k] = column
            values[k] = value
        return values, rows, columns

    def __repr__(self) -> str:
        return f"DictionaryOfKeys(nnz={len(self.values)})"
