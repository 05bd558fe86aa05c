import numpy as np


class CountTables:
    """
    Sufficient statistics of the LDA sampler.

      - doc_topic   : n_{d,t}, tokens of document d assigned to topic t
      - topic_word  : n_{t,w}, tokens of word w assigned to topic t
      - topic_total : n_t = sum_w n_{t,w}

    The tables only change through ``add`` and ``remove`` so that they always
    agree with the token assignments they were built from.
    """

    def __init__(self, num_docs, num_topics, vocab_size):
        self.doc_topic = np.zeros((num_docs, num_topics), dtype=int)
        self.topic_word = np.zeros((num_topics, vocab_size), dtype=int)
        self.topic_total = np.zeros(num_topics, dtype=int)

    def __repr__(self):
        return (f'CountTables(docs={self.doc_topic.shape[0]}, '
                f'topics={self.topic_total.shape[0]}, V={self.topic_word.shape[1]})')

    @property
    def num_topics(self):
        return self.topic_total.shape[0]

    def add(self, d_idx, w_id, topic):
        self.doc_topic[d_idx, topic] += 1
        self.topic_word[topic, w_id] += 1
        self.topic_total[topic] += 1

    def remove(self, d_idx, w_id, topic):
        self.doc_topic[d_idx, topic] -= 1
        self.topic_word[topic, w_id] -= 1
        self.topic_total[topic] -= 1

    def check_consistency(self, corpus, assignments):
        """
        Return True when every count matches the assignments exactly.

        Parameters
        ----------
        corpus : list of arrays of int
            Word ids of each document.
        assignments : list of arrays of int
            Topic of each token, parallel to ``corpus``.
        """
        doc_topic = np.zeros_like(self.doc_topic)
        topic_word = np.zeros_like(self.topic_word)
        for d_idx, (doc, z_doc) in enumerate(zip(corpus, assignments)):
            np.add.at(doc_topic[d_idx], z_doc, 1)
            np.add.at(topic_word, (z_doc, doc), 1)
        return (np.array_equal(doc_topic, self.doc_topic)
                and np.array_equal(topic_word, self.topic_word)
                and np.array_equal(topic_word.sum(axis=1), self.topic_total))

    def snapshot(self):
        """Independent copies of the three tables."""
        return self.doc_topic.copy(), self.topic_word.copy(), self.topic_total.copy()
