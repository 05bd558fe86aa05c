import logging
import time

import numpy as np

from lda_counts import CountTables
from topic_config import (InvalidConfiguration, InvalidToken, LDAConfig,
                          ModelState, ModelStateError)
from topic_sampling import make_rng, normalize, sample_categorical

logger = logging.getLogger(__name__)


def encode_corpus(corpus, vocab_size):
    """
    Convert documents to integer arrays, rejecting anything that is not a word
    id in ``[0, vocab_size)``.
    """
    encoded = []
    for d_idx, doc in enumerate(corpus):
        try:
            arr = np.asarray(list(doc))
        except (TypeError, ValueError) as exc:
            raise InvalidToken(f"document {d_idx} cannot be read as word ids: {exc}") from exc
        if not arr.size:
            encoded.append(np.zeros(0, dtype=int))
            continue
        if arr.ndim != 1 or arr.dtype.kind not in "iu":
            raise InvalidToken(f"document {d_idx} holds non-integer word ids ({arr.dtype})")
        if arr.min() < 0 or arr.max() >= vocab_size:
            bad = arr[(arr < 0) | (arr >= vocab_size)][0]
            raise InvalidToken(f"document {d_idx} holds word id {bad} outside [0, {vocab_size})")
        encoded.append(arr.astype(int))
    return encoded


##############################################################################
# Latent Dirichlet Allocation (collapsed Gibbs sampling)
##############################################################################
class LDA:
    """
    Collapsed Gibbs sampler for LDA with a fixed number of topics.

    Each token carries one topic assignment. A sweep removes a token from the
    count tables, scores every topic with

        (n_{d,t} + alpha) * (n_{t,w} + beta) / (n_t + V * beta)

    draws a new topic from the normalized scores and adds the token back.
    """

    def __init__(self, vocabulary, num_topics=None, alpha=0.5, beta=0.1,
                 seed=0, config=None):
        """
        Parameters
        ----------
        vocabulary : sequence
            Maps word_id -> word; only ``len`` and indexing are used.
        num_topics : int
            K, the number of topics.
        alpha : float
            Document-topic smoothing.
        beta : float
            Topic-word smoothing.
        seed : int or None
        config : LDAConfig, optional
            Replaces the keyword options above when given.
        """
        if config is None:
            config = LDAConfig(num_topics=num_topics, alpha=alpha, beta=beta, seed=seed)
        config.validate()
        if len(vocabulary) == 0:
            raise InvalidConfiguration("vocabulary must not be empty")

        self.config = config
        self.vocab = vocabulary
        self.V = len(vocabulary)
        self.K = config.num_topics
        self.alpha = config.alpha
        self.beta = config.beta
        self.beta_sum = self.beta * self.V

        self.rng = make_rng(config.seed)
        self.state = ModelState.UNINITIALIZED
        self.iterations_done = 0

        self.documents = []
        self.num_docs = 0
        self.z_tokens = []
        self.counts = None

    def __repr__(self):
        return (f'LDA(K={self.K}, V={self.V}, docs={self.num_docs}, '
                f'state={self.state.value}, iterations={self.iterations_done})')

    def initialize(self, corpus):
        """
        Give every token a uniformly random topic and build the count tables.

        Parameters
        ----------
        corpus : list of lists
            Each item is a document, which is a list of integer word IDs.
        """
        if self.state is not ModelState.UNINITIALIZED:
            raise ModelStateError("model is already initialized")
        if len(corpus) == 0:
            raise InvalidConfiguration("corpus must contain at least one document")
        documents = encode_corpus(corpus, self.V)

        counts = CountTables(len(documents), self.K, self.V)
        z_tokens = []
        for d_idx, doc in enumerate(documents):
            z_doc = self.rng.randint(self.K, size=len(doc))
            for w_id, topic in zip(doc, z_doc):
                counts.add(d_idx, w_id, topic)
            z_tokens.append(z_doc)

        self.documents = documents
        self.num_docs = len(documents)
        self.z_tokens = z_tokens
        self.counts = counts
        self.state = ModelState.INITIALIZED
        logger.info("initialized LDA with %d documents, %d tokens, K=%d, V=%d",
                    self.num_docs, sum(len(d) for d in documents), self.K, self.V)
        return self

    ##########################################################################
    # Sampling
    ##########################################################################
    def _topic_weights(self, doc_topic, topic_words, topic_total):
        return ((doc_topic + self.alpha) * (topic_words + self.beta) /
                (topic_total + self.beta_sum))

    def topic_probabilities(self, d_idx, token_i):
        """
        The normalized distribution used to resample token ``token_i`` of
        document ``d_idx``, computed with that token left out of the counts.
        """
        self._require_initialized()
        w_id = self.documents[d_idx][token_i]
        old = self.z_tokens[d_idx][token_i]
        own = np.zeros(self.K, dtype=int)
        own[old] = 1
        weights = self._topic_weights(self.counts.doc_topic[d_idx] - own,
                                      self.counts.topic_word[:, w_id] - own,
                                      self.counts.topic_total - own)
        return normalize(weights)

    def step(self):
        """One full sweep over every token, in document order."""
        self._require_initialized()
        counts = self.counts
        for d_idx, doc in enumerate(self.documents):
            z_doc = self.z_tokens[d_idx]
            doc_topic = counts.doc_topic[d_idx]
            for i, w_id in enumerate(doc):
                counts.remove(d_idx, w_id, z_doc[i])

                probs = normalize(self._topic_weights(doc_topic,
                                                      counts.topic_word[:, w_id],
                                                      counts.topic_total))
                new_topic = sample_categorical(self.rng, probs)

                z_doc[i] = new_topic
                counts.add(d_idx, w_id, new_topic)

        self.state = ModelState.SAMPLING
        self.iterations_done += 1

    def run(self, iterations, display_interval=None, top_n=5):
        """
        Run ``iterations`` sweeps. The iteration count is the only stopping rule.

        Parameters
        ----------
        iterations : int
        display_interval : int, optional
            Print the topics every N iterations.
        top_n : int
            Number of words shown per topic when displaying.

        Returns
        -------
        float
            Elapsed time in minutes.
        """
        self._require_initialized()
        if iterations < 0:
            raise InvalidConfiguration("iterations must be >= 0")
        logger.info("starting LDA sampling for %d iterations", iterations)
        start_time = time.time()

        for it in range(iterations):
            self.step()
            logger.debug("LDA iteration %d done", self.iterations_done)
            if display_interval and (it + 1) % display_interval == 0:
                print(f"Iteration {it + 1}")
                self.exhibit_topics(top_n=top_n)

        self.state = ModelState.CONVERGED
        total_time_minutes = round((time.time() - start_time) / 60, 2)
        logger.info("LDA sampling finished after %d iterations (%.2f min)",
                    self.iterations_done, total_time_minutes)
        return total_time_minutes

    ##########################################################################
    # Read-out
    ##########################################################################
    def topic_word_distribution(self):
        """K x V matrix of smoothed word probabilities per topic."""
        self._require_initialized()
        counts = self.counts
        return ((counts.topic_word + self.beta) /
                (counts.topic_total[:, None] + self.beta_sum))

    def document_topic_distribution(self):
        """D x K matrix of smoothed topic mixtures per document."""
        self._require_initialized()
        doc_topic = self.counts.doc_topic
        return ((doc_topic + self.alpha) /
                (doc_topic.sum(axis=1)[:, None] + self.K * self.alpha))

    def top_term_ids(self, topic, n):
        """
        Ids of the ``n`` words with the highest weight in ``topic``; ties go to
        the lower id. An empty topic gives an empty list.
        """
        self._require_initialized()
        if not 0 <= topic < self.K:
            raise IndexError(f"topic must be in [0, {self.K}), got {topic}")
        if n <= 0:
            raise InvalidConfiguration("n must be > 0")
        if self.counts.topic_total[topic] == 0:
            return []
        order = np.argsort(-self.counts.topic_word[topic], kind="stable")
        return [int(w) for w in order[:n]]

    def top_terms(self, topic, n):
        """The vocabulary entries for ``top_term_ids(topic, n)``."""
        return [self.vocab[w] for w in self.top_term_ids(topic, n)]

    def topics(self, n):
        """Top ``n`` terms of every topic, indexed by topic id."""
        return [self.top_terms(t, n) for t in range(self.K)]

    def exhibit_topics(self, top_n=5, show_counts=True):
        """Print every topic with its top words."""
        for t in range(self.K):
            ids = self.top_term_ids(t, top_n)
            if show_counts:
                desc = ', '.join(f'{self.vocab[w]}({self.counts.topic_word[t, w]})' for w in ids)
            else:
                desc = ', '.join(str(self.vocab[w]) for w in ids)
            print(f"Topic {t} (tokens={self.counts.topic_total[t]}): {desc}")

    ##########################################################################
    # Inference on unseen documents
    ##########################################################################
    def inference(self, document, iterations=50, seed=None):
        """
        Estimate the topic mixture of an unseen document.

        Only the document's own assignments are resampled; the trained count
        tables are read but never written.

        Parameters
        ----------
        document : list of int
        iterations : int
        seed : int, optional
            Seed of the inference generator; defaults to the model seed.

        Returns
        -------
        numpy.ndarray
            Smoothed topic mixture of length K.
        """
        if self.state is not ModelState.CONVERGED:
            raise ModelStateError("inference needs a trained model; call run() first")
        if iterations <= 0:
            raise InvalidConfiguration("iterations must be > 0")
        doc = encode_corpus([document], self.V)[0]
        rng = make_rng(self.config.seed if seed is None else seed)

        topic_word = self.counts.topic_word
        topic_total = self.counts.topic_total
        local_counts = np.zeros(self.K, dtype=int)
        z_doc = rng.randint(self.K, size=len(doc))
        np.add.at(local_counts, z_doc, 1)

        for _ in range(iterations):
            for i, w_id in enumerate(doc):
                local_counts[z_doc[i]] -= 1
                probs = normalize(self._topic_weights(local_counts,
                                                      topic_word[:, w_id],
                                                      topic_total))
                z_doc[i] = sample_categorical(rng, probs)
                local_counts[z_doc[i]] += 1

        return (local_counts + self.alpha) / (len(doc) + self.K * self.alpha)

    def _require_initialized(self):
        if self.state is ModelState.UNINITIALIZED:
            raise ModelStateError("call initialize() before sampling or reading the model")
