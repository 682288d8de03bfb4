"""
Tests for dense and sparse vectors.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from guided_projection.errors import DimensionMismatchError
from guided_projection.linalg import DenseVector, SparseVector


def test_dense_arithmetic():
    u = DenseVector([1.0, 2.0, 3.0])
    v = DenseVector([0.5, -1.0, 2.0])
    assert_allclose((u + v).to_array(), [1.5, 1.0, 5.0])
    assert_allclose((u - v).to_array(), [0.5, 3.0, 1.0])
    assert_allclose((-u).to_array(), [-1.0, -2.0, -3.0])
    assert_allclose((2 * u).to_array(), [2.0, 4.0, 6.0])
    assert_allclose((u / 2).to_array(), [0.5, 1.0, 1.5])
    assert u.transpose_multiply(v) == pytest.approx(0.5 - 2.0 + 6.0)
    assert u.norm() == pytest.approx(np.sqrt(14.0))


def test_dense_rejects_bad_operands():
    u = DenseVector([1.0, 2.0])
    with pytest.raises(DimensionMismatchError):
        u + DenseVector([1.0, 2.0, 3.0])
    with pytest.raises(DimensionMismatchError):
        DenseVector([[1.0, 2.0]])
    with pytest.raises(ZeroDivisionError):
        u / 0


def test_dense_write_through_indexing():
    u = DenseVector.zero(3)
    u[1] = 4.0
    assert list(u) == [0.0, 4.0, 0.0]
    assert len(u) == 3


def test_sparse_construction_and_access():
    v = SparseVector(5, [0, 3, 3], [1.0, 2.0, 0.5])
    assert v.nnz == 2
    assert v[3] == 2.5
    assert v[1] == 0.0
    assert list(v.non_zeros()) == [(0, 1.0), (3, 2.5)]
    assert_allclose(v.to_array(), [1.0, 0.0, 0.0, 2.5, 0.0])
    with pytest.raises(IndexError):
        v[5]
    with pytest.raises(DimensionMismatchError):
        SparseVector(3, [0, 1], [1.0])


def test_sparse_plus_sparse_stays_sparse():
    u = SparseVector(4, [0, 2], [1.0, 2.0])
    v = SparseVector(4, [2, 3], [3.0, -1.0])
    total = u + v
    assert isinstance(total, SparseVector)
    assert_allclose(total.to_array(), [1.0, 0.0, 5.0, -1.0])
    difference = u - v
    assert isinstance(difference, SparseVector)
    assert_allclose(difference.to_array(), [1.0, 0.0, -1.0, 1.0])


def test_mixed_arithmetic_is_dense():
    """Dense wins when a sparse and a dense vector meet."""
    u = SparseVector(3, [1], [2.0])
    d = DenseVector([1.0, 1.0, 1.0])
    for result in (u + d, d + u, u - d, d - u, u + np.ones(3), np.ones(3) + u):
        assert isinstance(result, DenseVector)
    assert_allclose((u - d).to_array(), [-1.0, 1.0, -1.0])
    assert_allclose((d - u).to_array(), [1.0, -1.0, 1.0])
    assert_allclose((np.ones(3) - u).to_array(), [1.0, -1.0, 1.0])


def test_sparse_dot_products():
    u = SparseVector(4, [0, 2], [1.0, 2.0])
    v = SparseVector(4, [2], [3.0])
    assert u.transpose_multiply(v) == pytest.approx(6.0)
    assert v.dot(u) == pytest.approx(6.0)
    assert u.transpose_multiply(DenseVector([1.0, 1.0, 1.0, 1.0])) == pytest.approx(3.0)
    assert DenseVector([1.0, 1.0, 1.0, 1.0]).transpose_multiply(u) == pytest.approx(3.0)
    with pytest.raises(DimensionMismatchError):
        u.transpose_multiply(SparseVector(3))


def test_sparse_scaling_and_cleaning():
    u = SparseVector(3, [0, 1], [1e-10, 4.0])
    assert_allclose((u * 0.5).to_array(), [5e-11, 2.0, 0.0])
    assert_allclose((u / 4).to_array(), [2.5e-11, 1.0, 0.0])
    with pytest.raises(ZeroDivisionError):
        u / 0.0
    u.clean(1e-8)
    assert u.nnz == 1
    assert u.norm() == pytest.approx(4.0)


def test_sparse_helpers():
    e = SparseVector.standard_vector(3, 2)
    assert_allclose(e.to_array(), [0.0, 0.0, 1.0])
    assert SparseVector.zero(4).nnz == 0
    assert SparseVector.from_array([0.0, 1e-9, 3.0], tolerance=1e-6) == SparseVector(3, [2], [3.0])
    assert isinstance(e.to_dense(), DenseVector)
    assert_allclose((-e).to_array(), [0.0, 0.0, -1.0])
