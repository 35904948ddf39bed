import numpy as np
from amf import AMF
from evaluation import remove_entries, holdout_mask, error_metrics

def sigmoid(x):
    return 1 / (1 + np.exp(-x))

def qos_matrix(m, n, r):
    # user latent features
    U = np.random.randn(m, r) / np.sqrt(r)

    # service latent features
    V = np.random.randn(n, r)

    # QoS values in (0.1, 0.9)
    A = 0.1 + 0.8 * sigmoid(U @ V.T)
    return (A, U, V)

# model parameters
m = 60
n = 80
r = 5
density = 0.3

# generate model
np.random.seed(0)
(A, U, V) = qos_matrix(m, n, r)

# observation (keep a fraction of the entries)
X = remove_entries(A, density, random_state=0)

# estimate via AMF
params = {
	'dim': 10,
	'lmda': 5e-4,
	'eta': 0.8,
	'beta': 0.3,
	'converge_threshold': 5e-3,
	'random_state': 0,
	'verbose': True
}
model = AMF(**params)
X_amf = model.fit_transform(X)

# report error on the removed entries
metrics = error_metrics(A, X_amf, holdout_mask(A, X))
print(", ".join("{} = {:.4f}".format(k, v) for (k, v) in metrics.items()))
