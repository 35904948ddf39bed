import numpy as np
import pytest

from evaluation import error_metrics, holdout_mask, remove_entries


def test_remove_entries_keeps_requested_density():
    matrix = np.random.RandomState(0).rand(10, 20) + 0.1
    removed = remove_entries(matrix, 0.25, random_state=0)
    kept = removed > 0
    assert np.count_nonzero(kept) == 50
    np.testing.assert_array_equal(removed[kept], matrix[kept])


def test_remove_entries_only_draws_observed_cells():
    matrix = np.zeros((4, 5))
    matrix[0, :] = 0.5
    removed = remove_entries(matrix, 0.6, random_state=1)
    assert np.count_nonzero(removed) == 3
    assert np.all(removed[1:] == 0)


def test_remove_entries_is_reproducible():
    matrix = np.random.RandomState(2).rand(6, 6) + 0.1
    np.testing.assert_array_equal(
        remove_entries(matrix, 0.5, random_state=7),
        remove_entries(matrix, 0.5, random_state=7))


@pytest.mark.parametrize("density", [0.0, -0.1, 1.5])
def test_remove_entries_rejects_bad_density(density):
    with pytest.raises(ValueError):
        remove_entries(np.ones((2, 2)), density)


def test_holdout_mask_selects_removed_cells():
    matrix = np.array([[0.5, 0.0], [0.2, 0.4]])
    removed = np.array([[0.5, 0.0], [0.0, 0.0]])
    mask = holdout_mask(matrix, removed)
    assert mask.tolist() == [[False, False], [True, True]]


def test_error_metrics():
    real = np.array([[1.0, 2.0], [4.0, 0.0]])
    pred = np.array([[1.5, 1.0], [4.0, 9.0]])
    mask = real > 0
    metrics = error_metrics(real, pred, mask)

    # absolute errors 0.5, 1.0, 0.0; relative errors 0.5, 0.5, 0.0
    assert metrics['MAE'] == pytest.approx(0.5)
    assert metrics['NMAE'] == pytest.approx(0.5 / (7.0 / 3.0))
    assert metrics['RMSE'] == pytest.approx(np.sqrt(1.25 / 3.0))
    assert metrics['MRE'] == pytest.approx(0.5)
    assert metrics['NPRE'] == pytest.approx(0.5)


def test_error_metrics_requires_selected_cells():
    with pytest.raises(ValueError):
        error_metrics(np.ones((2, 2)), np.ones((2, 2)), np.zeros((2, 2), dtype=bool))
