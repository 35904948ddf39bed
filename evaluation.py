"""
Evaluation helpers for QoS prediction
"""
import numpy as np
from sklearn.utils import check_array, check_random_state

from amf import EPS


def remove_entries(matrix, density, random_state=None):
	"""
	keep round(density * n_observed) observed entries of matrix, drawn
	at random without replacement, and mark the rest as missing (0)
	"""
	if not 0 < density <= 1:
		raise ValueError(
			"density must be in (0, 1], got %s" % (density,)
		)
	matrix = check_array(matrix, dtype=np.float64, ensure_all_finite="allow-nan")
	rng = check_random_state(random_state)
	observed = np.argwhere(np.abs(matrix) > EPS)
	num_keep = int(round(density * len(observed)))
	keep = rng.choice(len(observed), size=num_keep, replace=False)
	(rows, cols) = observed[keep].T
	removed = np.zeros(matrix.shape)
	removed[rows, cols] = matrix[rows, cols]
	return removed


def holdout_mask(matrix, removed_matrix):
	"""
	cells observed in matrix but missing from removed_matrix
	"""
	return (np.abs(matrix) > EPS) & ~(np.abs(removed_matrix) > EPS)


def error_metrics(real, pred, mask):
	"""
	compute prediction error over the cells selected by mask

	MAE  : mean absolute error
	NMAE : MAE normalized by the mean real value
	RMSE : root mean squared error
	MRE  : median relative error
	NPRE : 90th percentile of the relative error
	"""
	mask = np.asarray(mask, dtype=bool)
	if not np.any(mask):
		raise ValueError("mask must select at least one entry")
	r = np.asarray(real, dtype=np.float64)[mask]
	p = np.asarray(pred, dtype=np.float64)[mask]
	abs_error = np.abs(r - p)
	rel_error = abs_error / r
	mae = np.mean(abs_error)
	return {
		'MAE': mae,
		'NMAE': mae / np.mean(r),
		'RMSE': np.sqrt(np.mean(abs_error**2)),
		'MRE': np.median(rel_error),
		'NPRE': np.percentile(rel_error, 90),
	}
