"""
Asymmetric Matrix Factorization (AMF) for QoS prediction
"""
import time
import warnings
import numpy as np
from sklearn.utils import check_array, check_random_state

# entries with absolute value at or below EPS are missing
EPS = 1e-8

# epochs run before the convergence test may pass
MIN_ITER = 30


def extract_samples(X):
	"""
	collect the observed entries of X in row-major order.
	returns (sp_index, sp_value) where sp_index[k] = (i, j)
	and sp_value[k] = X[i, j]
	"""
	observed = np.abs(X) > EPS
	sp_index = np.argwhere(observed)
	sp_value = X[observed]
	return (sp_index, sp_value)


def sigmoid(x):
	with np.errstate(over='ignore'):
		return 1 / (1 + np.exp(-x))


def grad_sigmoid(x):
	"""
	derivative of the sigmoid, i.e. sigmoid(x) * (1 - sigmoid(x))
	"""
	with np.errstate(over='ignore'):
		return 1 / (2 + np.exp(-x) + np.exp(x))


def dot_product(u, s):
	"""
	inner product accumulated in extended precision
	"""
	return np.multiply(u, s, dtype=np.longdouble).sum()


def predict_matrix(X, U, S, full=False, out=None):
	"""
	fill out[i, j] = sigmoid(U[i] . S[j]) for every cell if full is set,
	otherwise only for the cells observed in X. cells that are not
	computed keep their previous value.
	"""
	if out is None:
		out = np.zeros(X.shape)
	scores = np.dot(U.astype(np.longdouble), S.astype(np.longdouble).T)
	if full:
		out[:, :] = sigmoid(scores)
	else:
		observed = np.abs(X) > EPS
		out[observed] = sigmoid(scores[observed])
	return out


def loss(X, pred, U, S, lmda):
	"""
	squared relative error at observed cells plus L2 penalty on U and S
	"""
	observed = np.abs(X) > EPS
	r = X[observed]
	cost = 0.5 * np.sum(((r - pred[observed]) / r)**2)
	penalty = 0.5 * lmda * (np.sum(U**2) + np.sum(S**2))
	return cost + penalty


def update_confidence(eu, es, i, j, r_value, p_value, beta):
	"""
	update the confidence of user i and service j from the relative
	error of one sample. returns the weights (wi, wj) computed before
	the update.
	"""
	eij = abs(p_value - r_value) / r_value
	total = eu[i] + es[j]
	wi = eu[i] / total
	wj = es[j] / total
	eu[i] = beta * wi * eij + (1 - beta * wi) * eu[i]
	es[j] = beta * wj * eij + (1 - beta * wj) * es[j]
	return (wi, wj)


def gradient_step(U, S, i, j, r_value, p_value, score, wi, wj, lmda, eta):
	"""
	one SGD step on U[i] and S[j] for sample (i, j, r_value)
	"""
	u = U[i].copy()
	s = S[j].copy()
	err = (p_value - r_value) * grad_sigmoid(score) / r_value**2
	grad_u = wi * err * s + lmda * u
	grad_s = wj * err * u + lmda * s
	U[i] -= eta * grad_u
	S[j] -= eta * grad_s


def timestamp():
	return time.strftime("%Y-%m-%d %X")


class AMF():
	"""
	Predict missing QoS values via asymmetric matrix factorization
	"""
	def __init__(
			self,
			dim=10,
			lmda=5e-4,
			max_iter=None,
			converge_threshold=5e-3,
			eta=0.8,
			beta=0.3,
			min_iter=MIN_ITER,
			random_state=None,
			callback=None,
			verbose=False):
		"""
		Parameters
		----------
		dim : int
		Rank of the latent factors

		lmda : float
		L2 regularization coefficient

		max_iter : int
		Accepted for compatibility, training is not capped by it.
		Training runs until the normalized loss reaches converge_threshold,
		so an unreachable threshold never terminates. Bound the runtime
		with a callback that raises.

		converge_threshold : float
		Stop once the loss divided by the number of samples is at or below
		this value (and at least min_iter epochs have run)

		eta : float
		Learning rate

		beta : float
		Adaptation rate of the user and service confidence weights

		min_iter : int
		Minimum number of epochs before convergence is accepted

		random_state : None, int or numpy.random.RandomState
		Seeds the sample draws and the default factor initialization

		callback : callable
		Called as callback(epoch, loss) after every epoch

		verbose : bool
		"""
		self.dim = dim
		self.lmda = lmda
		self.max_iter = max_iter
		self.converge_threshold = converge_threshold
		self.eta = eta
		self.beta = beta
		self.min_iter = min_iter
		self.random_state = random_state
		self.callback = callback
		self.verbose = verbose

	def __repr__(self):
		return str(self)

	def __str__(self):
		field_list = []
		for (k, v) in sorted(self.__dict__.items()):
			if k.endswith("_"):
				continue
			if (v is None) or (isinstance(v, (float, int))):
				field_list.append("%s=%s" % (k, v))
			elif isinstance(v, str):
				field_list.append("%s='%s'" % (k, v))
		return "%s(%s)" % (
			self.__class__.__name__, ", ".join(field_list))

	def _check_params(self):
		"""
		check to make sure the hyperparameters are valid
		"""
		if int(self.dim) != self.dim or self.dim < 1:
			raise ValueError(
				"dim must be a positive integer, got %s" % (self.dim,)
			)
		if self.lmda < 0:
			raise ValueError("lmda must be non-negative, got %s" % (self.lmda,))
		if self.eta <= 0:
			raise ValueError("eta must be positive, got %s" % (self.eta,))
		if self.beta < 0:
			raise ValueError("beta must be non-negative, got %s" % (self.beta,))
		if self.converge_threshold <= 0:
			raise ValueError(
				"converge_threshold must be positive, got %s" % (self.converge_threshold,)
			)
		if self.min_iter < 0:
			raise ValueError(
				"min_iter must be non-negative, got %s" % (self.min_iter,)
			)

	def _check_input_matrix(self, X):
		"""
		check to make sure that the input matrix is valid.
		observed values are used as denominators and must be positive.
		"""
		if len(X.shape) != 2:
			raise ValueError(
				"expected 2d matrix, got %s array" % (X.shape,)
			)
		observed = np.abs(X) > EPS
		if not np.any(observed):
			raise ValueError(
				"input matrix must have some observed (i.e., non-missing) values"
			)
		if np.all(observed):
			warnings.warn(
				"input matrix is not missing any values"
			)
		if np.any(X[observed] < 0):
			raise ValueError(
				"observed QoS values must be positive"
			)

	def _prepare_input_data(self, X):
		"""
		prepare input matrix X. return if valid else terminate
		"""
		X = check_array(X, dtype=np.float64, ensure_all_finite="allow-nan")
		self._check_input_matrix(X)
		return X

	def _init_factors(self, F, num_rows, rng, name):
		"""
		draw factors uniformly in [0, 1) unless given
		"""
		if F is None:
			return rng.rand(num_rows, self.dim)
		F = np.array(F, dtype=np.float64)
		if F.shape != (num_rows, self.dim):
			raise ValueError(
				"expected %s of shape %s, got %s" % (name, (num_rows, self.dim), F.shape)
			)
		return F

	def _log_epoch(self, epoch, loss_value):
		self.loss_curve_.append(loss_value)
		if self.verbose:
			print("{}: iter = {}, lossValue = {:.6f}".format(
				timestamp(), epoch, loss_value))
		if self.callback is not None:
			self.callback(epoch, loss_value)

	def _fit(self, X, U, S, pred, rng):
		"""
		train U and S in place until convergence, then fill pred in place
		"""
		(sp_index, sp_value) = extract_samples(X)
		num_sample = len(sp_value)
		(num_user, num_service) = X.shape
		eu = np.ones(num_user, dtype=np.longdouble)
		es = np.ones(num_service, dtype=np.longdouble)
		self.loss_curve_ = []

		n_iter = 0
		loss_value = np.inf
		while loss_value > self.converge_threshold or n_iter < self.min_iter:
			# one epoch of random sampling with replacement
			for sp_id in rng.randint(num_sample, size=num_sample):
				(i, j) = sp_index[sp_id]
				r_value = sp_value[sp_id]
				score = dot_product(U[i], S[j])
				p_value = float(sigmoid(score))
				(wi, wj) = update_confidence(eu, es, i, j, r_value, p_value, self.beta)
				gradient_step(U, S, i, j, r_value, p_value, score, wi, wj,
							  self.lmda, self.eta)

			predict_matrix(X, U, S, full=False, out=pred)
			loss_value = loss(X, pred, U, S, self.lmda) / num_sample
			self._log_epoch(n_iter, loss_value)
			n_iter += 1

		predict_matrix(X, U, S, full=True, out=pred)

		self.U_ = U
		self.S_ = S
		self.eu_ = eu
		self.es_ = es
		self.n_iter_ = n_iter
		self.loss_ = loss_value
		self.n_samples_ = num_sample
		if self.verbose:
			print("[AMF] converged after {} iterations".format(n_iter))
		return pred

	def fit_transform(self, X, U=None, S=None):
		"""
		predict every entry of the QoS matrix X.
		missing entries are zero (or NaN). U and S are the initial
		factors, drawn uniformly in [0, 1) when omitted.
		"""
		self._check_params()
		X = self._prepare_input_data(X)
		(num_user, num_service) = X.shape
		rng = check_random_state(self.random_state)
		U = self._init_factors(U, num_user, rng, "U")
		S = self._init_factors(S, num_service, rng, "S")
		pred = np.zeros(X.shape)
		return self._fit(X, U, S, pred, rng)

	def predict(self, user, service):
		"""
		predicted QoS of (user, service) from the fitted factors.
		user and service may be integers or broadcastable index arrays.
		"""
		if not hasattr(self, "U_"):
			raise ValueError("AMF instance is not fitted yet, call fit_transform first")
		u = self.U_[np.asarray(user)]
		s = self.S_[np.asarray(service)]
		scores = np.multiply(u, s, dtype=np.longdouble).sum(axis=-1)
		return sigmoid(scores).astype(np.float64)


def _as_matrix(buffer, rows, cols, name):
	"""
	view a flat caller-owned buffer as a (rows, cols) matrix that
	writes through to the buffer
	"""
	if not isinstance(buffer, np.ndarray) or buffer.dtype != np.float64:
		raise ValueError("%s must be a float64 numpy array" % name)
	if not (buffer.flags.c_contiguous and buffer.flags.writeable):
		raise ValueError("%s must be a writeable contiguous array" % name)
	if buffer.size != rows * cols:
		raise ValueError(
			"expected %s of size %d, got %d" % (name, rows * cols, buffer.size)
		)
	return buffer.reshape(rows, cols)


def amf(removed_data, num_user, num_service, dim, lmda, max_iter,
		converge_threshold, eta, beta, debug_mode, U, S, pred,
		random_state=None, callback=None):
	"""
	train AMF on a flattened row-major QoS matrix.

	U (num_user*dim) and S (num_service*dim) hold the initial factors
	and are refined in place; pred (num_user*num_service) is filled in
	place with the prediction of every entry. max_iter does not cap
	training. returns the number of epochs run.
	"""
	removed_data = np.asarray(removed_data, dtype=np.float64)
	if removed_data.size != num_user * num_service:
		raise ValueError(
			"expected removed_data of size %d, got %d"
			% (num_user * num_service, removed_data.size)
		)
	model = AMF(
		dim=dim,
		lmda=lmda,
		max_iter=max_iter,
		converge_threshold=converge_threshold,
		eta=eta,
		beta=beta,
		random_state=random_state,
		callback=callback,
		verbose=debug_mode)
	model._check_params()
	X = model._prepare_input_data(removed_data.reshape(num_user, num_service))
	U = _as_matrix(U, num_user, dim, "U")
	S = _as_matrix(S, num_service, dim, "S")
	pred = _as_matrix(pred, num_user, num_service, "pred")
	model._fit(X, U, S, pred, check_random_state(random_state))
	return model.n_iter_
