import pytest

from hlda_utils import Vocabulary


@pytest.fixture
def fruit_animal_vocab():
    return Vocabulary(["apple", "banana", "cherry", "dog", "eagle", "fox"])


@pytest.fixture
def two_cluster_corpus():
    """Four documents, two over words 0-2 and two over words 3-5."""
    return [
        [0, 1, 2] * 4,
        [0, 1, 2, 0, 1, 2, 1, 0],
        [3, 4, 5] * 4,
        [5, 4, 3, 3, 4, 5, 4, 5],
    ]


@pytest.fixture
def small_corpus():
    return [
        [0, 1, 2, 3, 1],
        [2, 3, 4, 2],
        [4, 5, 5, 0],
        [1, 1, 3],
        [5, 2, 0, 4, 4, 1],
    ]
