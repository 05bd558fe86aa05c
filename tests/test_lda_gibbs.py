import numpy as np
import pytest

from lda_counts import CountTables
from lda_gibbs import LDA
from topic_config import (InvalidConfiguration, InvalidToken, LDAConfig,
                          ModelState, ModelStateError)


def trained_model(vocab, corpus, iterations=30, **options):
    options.setdefault("num_topics", 2)
    model = LDA(vocab, **options)
    model.initialize(corpus)
    model.run(iterations)
    return model


def test_count_tables_add_remove():
    counts = CountTables(num_docs=2, num_topics=3, vocab_size=4)
    counts.add(0, 1, 2)
    counts.add(1, 1, 2)
    counts.remove(0, 1, 2)
    assert counts.doc_topic.tolist() == [[0, 0, 0], [0, 0, 1]]
    assert counts.topic_word[2].tolist() == [0, 1, 0, 0]
    assert counts.topic_total.tolist() == [0, 0, 1]


@pytest.mark.parametrize("num_topics", [0, -1, None])
def test_non_positive_topic_count_is_rejected(fruit_animal_vocab, num_topics):
    with pytest.raises(InvalidConfiguration):
        LDA(fruit_animal_vocab, num_topics=num_topics)


def test_bad_hyperparameters_are_rejected(fruit_animal_vocab):
    with pytest.raises(InvalidConfiguration):
        LDA(fruit_animal_vocab, num_topics=2, alpha=0)
    with pytest.raises(InvalidConfiguration):
        LDA([], num_topics=2)


def test_config_object(fruit_animal_vocab):
    model = LDA(fruit_animal_vocab, config=LDAConfig(num_topics=4, alpha=0.2))
    assert model.K == 4
    assert model.alpha == 0.2


def test_empty_corpus_is_rejected(fruit_animal_vocab):
    model = LDA(fruit_animal_vocab, num_topics=2)
    with pytest.raises(InvalidConfiguration):
        model.initialize([])
    assert model.state is ModelState.UNINITIALIZED
    assert model.counts is None


def test_out_of_range_token_is_rejected(fruit_animal_vocab):
    model = LDA(fruit_animal_vocab, num_topics=2)
    with pytest.raises(InvalidToken):
        model.initialize([[0, 1], [2, 6]])
    with pytest.raises(InvalidToken):
        model.initialize([[-1]])
    assert model.state is ModelState.UNINITIALIZED


def test_non_integer_tokens_are_rejected(fruit_animal_vocab):
    model = LDA(fruit_animal_vocab, num_topics=2)
    with pytest.raises(InvalidToken):
        model.initialize([[0, 1.7, 5.9]])
    with pytest.raises(InvalidToken):
        model.initialize([["apple"]])
    with pytest.raises(InvalidToken):
        model.initialize([[0, 1], [None]])
    assert model.state is ModelState.UNINITIALIZED
    assert model.counts is None


def test_lifecycle(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=2)
    with pytest.raises(ModelStateError):
        model.step()
    model.initialize(small_corpus)
    assert model.state is ModelState.INITIALIZED
    with pytest.raises(ModelStateError):
        model.initialize(small_corpus)
    with pytest.raises(ModelStateError):
        model.inference([0, 1])
    model.step()
    assert model.state is ModelState.SAMPLING
    model.run(3)
    assert model.state is ModelState.CONVERGED
    model.run(2)
    assert model.iterations_done == 6


def test_initialize_assigns_every_token(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=3).initialize(small_corpus)
    for doc, z_doc in zip(small_corpus, model.z_tokens):
        assert len(z_doc) == len(doc)
        assert np.all((z_doc >= 0) & (z_doc < 3))
    assert model.counts.check_consistency(model.documents, model.z_tokens)


def test_count_invariant_after_every_step(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=3, seed=11).initialize(small_corpus)
    for _ in range(10):
        model.step()
        counts = model.counts
        assert np.array_equal(counts.topic_word.sum(axis=1), counts.topic_total)
        for d_idx, doc in enumerate(small_corpus):
            assert counts.doc_topic[d_idx].sum() == len(doc)
        assert counts.check_consistency(model.documents, model.z_tokens)
        assert (counts.topic_word >= 0).all()


def test_topic_probabilities_are_normalized(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=4).initialize(small_corpus)
    model.run(2)
    for d_idx, doc in enumerate(small_corpus):
        for i in range(len(doc)):
            probs = model.topic_probabilities(d_idx, i)
            assert probs.shape == (4,)
            assert probs.sum() == pytest.approx(1.0)
            assert np.all(probs > 0)


def test_same_seed_same_assignments(fruit_animal_vocab, small_corpus):
    runs = []
    for _ in range(2):
        model = LDA(fruit_animal_vocab, num_topics=3, seed=42).initialize(small_corpus)
        history = []
        for _ in range(15):
            model.step()
            history.append([z.copy() for z in model.z_tokens])
        runs.append(history)
    for first, second in zip(*runs):
        for a, b in zip(first, second):
            assert np.array_equal(a, b)


def test_read_out_is_idempotent(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus, num_topics=3)
    assert model.top_terms(0, 3) == model.top_terms(0, 3)
    np.testing.assert_array_equal(model.topic_word_distribution(), model.topic_word_distribution())
    np.testing.assert_array_equal(model.document_topic_distribution(),
                                  model.document_topic_distribution())


def test_distributions_are_normalized(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus, num_topics=3)
    phi = model.topic_word_distribution()
    theta = model.document_topic_distribution()
    assert phi.shape == (3, 6)
    assert theta.shape == (len(small_corpus), 3)
    np.testing.assert_allclose(phi.sum(axis=1), 1.0)
    np.testing.assert_allclose(theta.sum(axis=1), 1.0)


def test_top_terms_break_ties_by_ascending_id(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=2).initialize(small_corpus)
    model.counts.topic_word[0] = [1, 4, 0, 4, 2, 4]
    model.counts.topic_total[0] = 15
    assert model.top_term_ids(0, 4) == [1, 3, 5, 4]
    assert model.top_terms(0, 2) == ["banana", "dog"]
    assert len(model.top_term_ids(0, 50)) == 6


def test_empty_topic_has_no_top_terms(fruit_animal_vocab):
    model = trained_model(fruit_animal_vocab, [[4]], iterations=5, num_topics=5)
    empty = [t for t in range(5) if model.counts.topic_total[t] == 0]
    assert len(empty) == 4
    for t in empty:
        assert model.top_terms(t, 3) == []
    assert sum(len(terms) for terms in model.topics(3)) == 3


def test_top_terms_argument_checks(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=2).initialize(small_corpus)
    with pytest.raises(IndexError):
        model.top_terms(2, 3)
    with pytest.raises(InvalidConfiguration):
        model.top_terms(0, 0)


def test_inference_leaves_model_untouched(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus, num_topics=3)
    tables_before = model.counts.snapshot()
    z_before = [z.copy() for z in model.z_tokens]
    rng_before = model.rng.get_state()

    theta = model.inference([0, 1, 1, 5, 2], iterations=20)

    for before, after in zip(tables_before, model.counts.snapshot()):
        assert np.array_equal(before, after)
    for a, b in zip(z_before, model.z_tokens):
        assert np.array_equal(a, b)
    rng_after = model.rng.get_state()
    assert np.array_equal(rng_before[1], rng_after[1])
    assert rng_before[2] == rng_after[2]
    assert theta.shape == (3,)
    assert theta.sum() == pytest.approx(1.0)


def test_inference_is_reproducible(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus, num_topics=3)
    doc = [0, 2, 2, 4, 1]
    np.testing.assert_array_equal(model.inference(doc, seed=5), model.inference(doc, seed=5))


def test_inference_errors(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus)
    with pytest.raises(InvalidToken):
        model.inference([0, 9])
    with pytest.raises(InvalidConfiguration):
        model.inference([0, 1], iterations=0)
    with pytest.raises(InvalidToken):
        model.inference([0, 2.5])
    with pytest.raises(InvalidToken):
        model.inference(["apple"])


def test_inference_on_empty_document_returns_prior(fruit_animal_vocab, small_corpus):
    model = trained_model(fruit_animal_vocab, small_corpus, num_topics=4)
    np.testing.assert_allclose(model.inference([]), [0.25] * 4)


def test_two_clusters_are_separated(fruit_animal_vocab, two_cluster_corpus):
    model = LDA(fruit_animal_vocab, num_topics=2, seed=1).initialize(two_cluster_corpus)
    model.run(500)

    theta = model.document_topic_distribution()
    np.testing.assert_allclose(theta.sum(axis=1), 1.0)

    first = set(model.top_term_ids(0, 2))
    second = set(model.top_term_ids(1, 2))
    assert first.isdisjoint(second)
    for terms in (first, second):
        assert terms <= {0, 1, 2} or terms <= {3, 4, 5}

    dominant = theta.argmax(axis=1)
    assert dominant[0] == dominant[1]
    assert dominant[2] == dominant[3]
    assert dominant[0] != dominant[2]
