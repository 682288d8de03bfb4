"""
Sparse storage and arithmetic used to assemble and solve the projection system.
"""

from .dictionary_of_keys import DictionaryOfKeys
from .vectors import DenseVector, SparseVector
from .sparse_matrix import SparseMatrix
from .compressed import CompressedMatrix, CompressedRow, CompressedColumn

__all__ = [
	"DictionaryOfKeys",
	"DenseVector",
	"SparseVector",
	"SparseMatrix",
	"CompressedMatrix",
	"CompressedRow",
	"CompressedColumn"
]
