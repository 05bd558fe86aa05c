"""
Configuration and error kinds shared by the LDA and hierarchical LDA samplers.
"""

from dataclasses import dataclass, fields
from enum import Enum
from numbers import Real


class TopicModelError(Exception):
    """Base class for every error raised by the topic models."""


class InvalidConfiguration(TopicModelError, ValueError):
    """Raised for non-positive counts or hyperparameters, or an empty corpus."""


class InvalidToken(TopicModelError, ValueError):
    """Raised when a document holds a vocabulary id outside the trained range."""


class ModelStateError(TopicModelError, RuntimeError):
    """Raised when an operation is requested from the wrong lifecycle state."""


class ModelState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    SAMPLING = "sampling"
    CONVERGED = "converged"


def _check_positive(name, value):
    if isinstance(value, bool) or not isinstance(value, Real) or not value > 0:
        raise InvalidConfiguration(f"{name} must be > 0, got {value!r}")


def _from_dict(cls, mapping):
    known = {f.name for f in fields(cls)}
    unknown = set(mapping) - known
    if unknown:
        raise InvalidConfiguration(
            f"unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}")
    config = cls(**mapping)
    config.validate()
    return config


@dataclass(frozen=True)
class LDAConfig:
    """
    Options of the fixed-K LDA sampler.

    Attributes
    ----------
    num_topics : int
        K, the number of topics.
    alpha : float
        Document-topic Dirichlet smoothing.
    beta : float
        Topic-word Dirichlet smoothing.
    seed : int or None
        Seed of the sampler's random generator.
    """

    num_topics: int
    alpha: float = 0.5
    beta: float = 0.1
    seed: int = 0

    def validate(self):
        if isinstance(self.num_topics, bool) or not isinstance(self.num_topics, int) \
                or self.num_topics <= 0:
            raise InvalidConfiguration(f"num_topics must be a positive int, got {self.num_topics!r}")
        _check_positive("alpha", self.alpha)
        _check_positive("beta", self.beta)
        return self

    @classmethod
    def from_dict(cls, mapping):
        return _from_dict(cls, mapping)


@dataclass(frozen=True)
class HLDAConfig:
    """
    Options of the hierarchical LDA sampler.

    Attributes
    ----------
    depth : int
        Number of levels of every document path (root = level 0).
    beta : float or tuple of float
        Topic-word smoothing. A sequence gives one value per level.
    gamma : float
        nCRP concentration; weight of opening a new branch.
    eta : float
        GEM stick-breaking concentration over levels.
    seed : int or None
        Seed of the sampler's random generator.
    """

    depth: int = 3
    beta: object = 0.1
    gamma: float = 1.0
    eta: float = 1.0
    seed: int = 0

    def validate(self):
        if isinstance(self.depth, bool) or not isinstance(self.depth, int) or self.depth <= 0:
            raise InvalidConfiguration(f"depth must be a positive int, got {self.depth!r}")
        if isinstance(self.beta, Real):
            _check_positive("beta", self.beta)
        else:
            betas = tuple(self.beta)
            if len(betas) != self.depth:
                raise InvalidConfiguration(
                    f"beta needs one value per level ({self.depth}), got {len(betas)}")
            for b in betas:
                _check_positive("beta", b)
        _check_positive("gamma", self.gamma)
        _check_positive("eta", self.eta)
        return self

    def level_betas(self):
        """Return the topic-word smoothing of every level as a tuple."""
        if isinstance(self.beta, Real):
            return (float(self.beta),) * self.depth
        return tuple(float(b) for b in self.beta)

    @classmethod
    def from_dict(cls, mapping):
        return _from_dict(cls, mapping)
