"""
Conditional models for chained-equations imputation.

Every method takes the observed response, the predictor matrix split into
observed and missing rows (intercept in column 0) and a Generator, and
returns draws for the missing rows. Model parameters are drawn from their
approximate posterior before predicting, so the imputed values carry the
estimation uncertainty of the conditional model (Van Buuren 2018, §3.2).

Methods (names follow R's mice):
    pmm      predictive mean matching on a Bayesian linear model
    norm     Bayesian linear regression with normal residual draws
    logreg   Bayesian logistic regression (binary categorical)
    polyreg  multinomial logistic regression (categorical, > 2 levels)

A small ridge penalty, ridge * diag(X'X), keeps every fit solvable when
dummy columns are sparse or collinear within the observed rows.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import linalg
from scipy.special import expit

from oncosurv.core.compute.linalg.qr import qr_solve

NUMERIC_METHODS = ("pmm", "norm")
CATEGORICAL_METHODS = ("logreg", "polyreg")
METHODS = NUMERIC_METHODS + CATEGORICAL_METHODS

RIDGE = 1e-5


def _penalty(X: NDArray, ridge: float) -> NDArray:
    d = np.sum(X ** 2, axis=0)
    return np.sqrt(ridge * np.maximum(d, 1.0))


def _posterior_draw(beta: NDArray, R: NDArray, scale: float, rng) -> NDArray:
    # β* ~ N(β, scale² (R'R)⁻¹)
    p = beta.shape[0]
    z = rng.standard_normal(p)
    return beta + scale * linalg.solve_triangular(R[:p, :p], z, lower=False)


def usable_columns(X_obs: NDArray) -> NDArray:
    """Intercept plus predictors that vary within the observed rows."""
    keep = np.ptp(X_obs, axis=0) > 0
    keep[0] = True
    return keep


def linear_draw(
    y: NDArray,
    X: NDArray,
    rng: np.random.Generator,
    ridge: float = RIDGE,
) -> tuple[NDArray, NDArray, float]:
    """Bayesian linear regression draw (mice's .norm.draw).

    Returns
    -------
    (beta_hat, beta_star, sigma_star)
    """
    n, p = X.shape
    augmented = np.vstack([X, np.diag(_penalty(X, ridge))])
    beta, qr = qr_solve(augmented, np.concatenate([y, np.zeros(p)]))

    resid = y - X @ beta
    df = max(n - p, 1)
    sigma = float(np.sqrt(resid @ resid / rng.chisquare(df)))
    beta_star = _posterior_draw(beta, qr.R, sigma, rng)
    return beta, beta_star, sigma


def impute_norm(y, X_obs, X_mis, rng, *, ridge: float = RIDGE, **_) -> NDArray:
    _, beta_star, sigma = linear_draw(y, X_obs, rng, ridge)
    return X_mis @ beta_star + rng.normal(0.0, sigma, size=X_mis.shape[0])


def impute_pmm(
    y, X_obs, X_mis, rng, *, donors: int = 5, ridge: float = RIDGE, **_
) -> NDArray:
    """Predictive mean matching (type 1 matching).

    Observed predictions use β̂, missing predictions use β*. Each missing
    row takes the observed value of a donor drawn at random from its
    `donors` nearest observed predictions, so imputations are always
    values that occur in the data.
    """
    beta, beta_star, _ = linear_draw(y, X_obs, rng, ridge)
    yhat_obs = X_obs @ beta
    yhat_mis = X_mis @ beta_star

    k = min(donors, y.shape[0])
    distance = np.abs(yhat_mis[:, None] - yhat_obs[None, :])
    nearest = np.argpartition(distance, k - 1, axis=1)[:, :k]
    pick = nearest[np.arange(X_mis.shape[0]), rng.integers(0, k, size=X_mis.shape[0])]
    return y[pick]


def logistic_fit(
    y: NDArray,
    X: NDArray,
    ridge: float = RIDGE,
    tol: float = 1e-8,
    max_iter: int = 25,
) -> tuple[NDArray, NDArray]:
    """Ridge-penalised logistic regression by IRLS with QR inner solves.

    Convergence follows glm.fit: |dev - dev_old| / (|dev_old| + 0.1) < tol.
    Reaching max_iter is not an error here: under separation the penalty
    bounds the coefficients and the draw proceeds from the last iterate.

    Returns
    -------
    (beta, R) where (R'R)⁻¹ is the penalised inverse information.
    """
    n, p = X.shape
    P = np.diag(_penalty(X, ridge))
    beta = np.zeros(p)
    dev_old = None
    R = None

    for _ in range(max_iter):
        eta = X @ beta
        mu = expit(eta)
        w = np.maximum(mu * (1.0 - mu), 1e-10)
        z = eta + (y - mu) / w
        sqrt_w = np.sqrt(w)

        beta, qr = qr_solve(
            np.vstack([X * sqrt_w[:, np.newaxis], P]),
            np.concatenate([z * sqrt_w, np.zeros(p)]),
        )
        R = qr.R

        mu = np.clip(expit(X @ beta), 1e-12, 1 - 1e-12)
        dev = -2.0 * float(np.sum(y * np.log(mu) + (1 - y) * np.log(1 - mu)))
        if dev_old is not None and abs(dev - dev_old) / (abs(dev_old) + 0.1) < tol:
            break
        dev_old = dev

    return beta, R


def impute_logreg(y, X_obs, X_mis, rng, *, ridge: float = RIDGE, **_) -> NDArray:
    """Binary draws (codes 0/1) from a Bayesian logistic model."""
    beta, R = logistic_fit(y.astype(np.float64), X_obs, ridge)
    beta_star = _posterior_draw(beta, R, 1.0, rng)
    prob = expit(X_mis @ beta_star)
    return (rng.random(X_mis.shape[0]) <= prob).astype(np.int64)


def _softmax(eta: NDArray) -> NDArray:
    # Reference category has linear predictor 0
    logits = np.hstack([np.zeros((eta.shape[0], 1)), eta])
    logits -= logits.max(axis=1, keepdims=True)
    expl = np.exp(logits)
    return expl / expl.sum(axis=1, keepdims=True)


def multinomial_fit(
    codes: NDArray,
    n_levels: int,
    X: NDArray,
    ridge: float = RIDGE,
    tol: float = 1e-8,
    max_iter: int = 50,
) -> tuple[NDArray, NDArray]:
    """Ridge-penalised multinomial logit by Newton-Raphson.

    Level 0 is the reference. Parameters are stacked level by level,
    vec = (B[:, 0], B[:, 1], ...).

    Returns
    -------
    (B, covariance)
        B : (p, K-1) coefficients
        covariance : ((K-1)p, (K-1)p) inverse penalised information
    """
    n, p = X.shape
    q = n_levels - 1
    Y = np.eye(n_levels)[codes][:, 1:]
    penalty = ridge * np.maximum(np.sum(X ** 2, axis=0), 1.0)
    B = np.zeros((p, q))
    ll_old = None

    for _ in range(max_iter):
        prob = _softmax(X @ B)
        ll = float(np.sum(np.log(np.maximum(prob[np.arange(n), codes], 1e-300))))

        info = np.zeros((q * p, q * p))
        for j in range(q):
            for k in range(q):
                w = prob[:, j + 1] * (float(j == k) - prob[:, k + 1])
                info[j * p:(j + 1) * p, k * p:(k + 1) * p] = (X * w[:, np.newaxis]).T @ X
        info += np.diag(np.tile(penalty, q))

        if ll_old is not None and abs(ll - ll_old) / (abs(ll_old) + 0.1) < tol:
            break
        ll_old = ll

        score = X.T @ (Y - prob[:, 1:]) - penalty[:, np.newaxis] * B
        step = linalg.solve(info, score.T.ravel(), assume_a="pos")
        B = B + step.reshape(q, p).T

    covariance = linalg.inv(info)
    return B, (covariance + covariance.T) / 2.0


def impute_polyreg(
    codes, X_obs, X_mis, rng, *, n_levels: int, ridge: float = RIDGE, **_
) -> NDArray:
    """Category draws (codes 0..K-1) from a Bayesian multinomial model."""
    B, covariance = multinomial_fit(codes, n_levels, X_obs, ridge)
    p, q = B.shape
    L = linalg.cholesky(covariance, lower=True)
    vec = B.T.ravel() + L @ rng.standard_normal(p * q)
    B_star = vec.reshape(q, p).T

    prob = _softmax(X_mis @ B_star)
    u = rng.random(X_mis.shape[0])
    draws = (np.cumsum(prob, axis=1) < u[:, np.newaxis]).sum(axis=1)
    return np.minimum(draws, n_levels - 1)


IMPUTERS = {
    "pmm": impute_pmm,
    "norm": impute_norm,
    "logreg": impute_logreg,
    "polyreg": impute_polyreg,
}
