"""
Random draws and closed-form probability terms shared by both samplers.

Every function takes the generator explicitly so that a training run, or an
isolated inference run, owns its random state.
"""

import numpy as np
from numpy.random import RandomState
from scipy.special import gammaln


def make_rng(seed=None):
    """
    Return a ``RandomState`` for ``seed``.

    An existing ``RandomState`` is passed through unchanged.
    """
    if isinstance(seed, RandomState):
        return seed
    return RandomState(seed)


def normalize(weights):
    """Scale non-negative weights so they sum to one."""
    weights = np.asarray(weights, dtype=float)
    total = weights.sum()
    if not total > 0:
        raise ValueError("cannot normalize weights with a non-positive sum")
    return weights / total


def sample_categorical(rng, probs):
    """Draw an index from a normalized probability vector."""
    return int(rng.multinomial(1, probs).argmax())


def log_normalize(log_weights):
    """Turn unnormalized log weights into probabilities (log-sum-exp)."""
    vals = np.asarray(log_weights, dtype=float)
    vals = np.exp(vals - np.max(vals))
    return vals / np.sum(vals)


def sample_log_categorical(rng, log_weights):
    """Draw an index from unnormalized log weights."""
    return sample_categorical(rng, log_normalize(log_weights))


def dirichlet_multinomial_loglik(node_counts, node_total, words, counts, beta, vocab_size):
    """
    Log probability of adding a bag of words to a topic under a symmetric
    Dirichlet(``beta``) prior, the topic already holding ``node_counts``.

    Parameters
    ----------
    node_counts : array of int, shape (V,) or None
        Current word counts of the topic. ``None`` stands for a new topic.
    node_total : int
        Sum of ``node_counts``.
    words : array of int
        Distinct word ids of the bag.
    counts : array of int
        Multiplicity of each entry of ``words``.
    beta : float
    vocab_size : int

    Returns
    -------
    float
    """
    if len(words) == 0:
        return 0.0
    beta_sum = beta * vocab_size
    if node_counts is None:
        existing = np.zeros(len(words))
    else:
        existing = node_counts[words]
    result = gammaln(node_total + beta_sum) - gammaln(node_total + counts.sum() + beta_sum)
    result += np.sum(gammaln(existing + counts + beta) - gammaln(existing + beta))
    return float(result)


def stick_breaking_level_prior(level_counts, eta):
    """
    Posterior predictive of a truncated GEM(``eta``) over a fixed number of levels.

    Stick proportions are Beta(1, eta). Given the counts of the other tokens of
    a document at each level, level ``k`` is chosen with probability

        (1 + n_k) / (1 + eta + n_{>=k}) * prod_{j<k} (eta + n_{>j}) / (1 + eta + n_{>=j})

    and the deepest level receives whatever is left of the stick.

    Parameters
    ----------
    level_counts : sequence of int
    eta : float

    Returns
    -------
    numpy.ndarray
        One probability per level, summing to one.
    """
    level_counts = np.asarray(level_counts, dtype=float)
    depth = len(level_counts)
    # sum_ge[k] = n_{>=k}
    sum_ge = np.cumsum(level_counts[::-1])[::-1]
    probs = np.zeros(depth)
    remaining = 1.0
    for k in range(depth - 1):
        sum_gt = sum_ge[k] - level_counts[k]
        stop = (1.0 + level_counts[k]) / (1.0 + eta + sum_ge[k])
        probs[k] = remaining * stop
        remaining *= (eta + sum_gt) / (1.0 + eta + sum_ge[k])
    probs[depth - 1] = remaining
    return probs
