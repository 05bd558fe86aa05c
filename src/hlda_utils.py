import logging
from collections import defaultdict

import nltk
from nltk.stem import PorterStemmer, WordNetLemmatizer
from nltk.tokenize import word_tokenize

logger = logging.getLogger(__name__)

NLTK_PACKAGES = ('punkt', 'punkt_tab', 'wordnet')


def download_nltk_data(packages=NLTK_PACKAGES):
    """Fetch the NLTK corpora used by ``preprocess_text``."""
    for package in packages:
        nltk.download(package, quiet=True)


class Vocabulary:
    """
    Stable two-way mapping between words and integer ids.

    Ids are handed out in order of first appearance and never change.
    """

    def __init__(self, words=()):
        self.word2idx = {}
        self.idx2word = []
        for word in words:
            self.add(word)

    def __repr__(self):
        return f'Vocabulary(size={len(self)})'

    def __len__(self):
        return len(self.idx2word)

    def __contains__(self, word):
        return word in self.word2idx

    def __getitem__(self, idx):
        return self.idx2word[idx]

    def __iter__(self):
        return iter(self.idx2word)

    def add(self, word):
        """Return the id of ``word``, assigning the next id if it is new."""
        idx = self.word2idx.get(word)
        if idx is None:
            idx = len(self.idx2word)
            self.word2idx[word] = idx
            self.idx2word.append(word)
        return idx

    def index_of(self, word):
        """Id of ``word``, or -1 when it is not in the vocabulary."""
        return self.word2idx.get(word, -1)

    def word_of(self, idx):
        """Word with id ``idx``, or an empty string for an unknown id."""
        if 0 <= idx < len(self.idx2word):
            return self.idx2word[idx]
        return ""

    def encode(self, tokens):
        """Ids of ``tokens``, adding unseen words to the vocabulary."""
        return [self.add(t) for t in tokens]

    def encode_known(self, tokens):
        """Ids of the tokens already in the vocabulary; the rest are dropped."""
        return [self.word2idx[t] for t in tokens if t in self.word2idx]


def preprocess_text(text, stemmer=None, lemmatizer=None, min_word_length=2, tokenizer=None):
    """
    Preprocesses the input text by:
    1. Lowercasing
    2. Tokenizing
    3. Removing non-alphabetic tokens
    4. Applying stemming and lemmatization
    5. Filtering out very short tokens
    """
    if stemmer is None:
        stemmer = PorterStemmer()
    if lemmatizer is None:
        lemmatizer = WordNetLemmatizer()
    if tokenizer is None:
        tokenizer = word_tokenize

    tokens = tokenizer(text.lower())
    tokens = [t for t in tokens if t.isalpha() and len(t) >= min_word_length]

    stemmed = [stemmer.stem(t) for t in tokens]
    return [lemmatizer.lemmatize(t) for t in stemmed]


def preprocess_and_filter_empty_with_labels(docs, labels, stemmer=None, lemmatizer=None,
                                            min_word_length=2, tokenizer=None):
    """
    Preprocesses a list of documents, filters out empty documents, and returns the
    filtered documents and corresponding labels.
    """
    processed_docs = [preprocess_text(doc, stemmer, lemmatizer, min_word_length, tokenizer)
                      for doc in docs]
    filtered_docs_labels = [(doc, label) for doc, label in zip(processed_docs, labels) if doc]
    filtered_docs, filtered_labels = zip(*filtered_docs_labels) if filtered_docs_labels else ([], [])
    return list(filtered_docs), list(filtered_labels)


def build_vocabulary(docs, min_freq=5):
    """
    Builds a sorted Vocabulary of the words seen at least ``min_freq`` times.
    """
    word_freq = defaultdict(int)
    for doc in docs:
        for word in doc:
            word_freq[word] += 1
    return Vocabulary(sorted(word for word, freq in word_freq.items() if freq >= min_freq))


def convert_docs_to_indices(docs, vocabulary):
    """
    Converts a list of tokenized documents to word ids, dropping unknown words.
    """
    return [vocabulary.encode_known(doc) for doc in docs]


def full_preprocessing_pipeline(docs, labels, stemmer=None, lemmatizer=None,
                                min_word_length=2, min_freq=5, tokenizer=None):
    """
    Full text preprocessing pipeline.

    Returns
    -------
    filtered_docs, filtered_labels, vocabulary, corpus
    """
    filtered_docs, filtered_labels = preprocess_and_filter_empty_with_labels(
        docs, labels, stemmer, lemmatizer, min_word_length, tokenizer)
    logger.info("documents after filtering: %d", len(filtered_docs))

    vocabulary = build_vocabulary(filtered_docs, min_freq)
    logger.info("vocabulary size: %d", len(vocabulary))

    corpus = convert_docs_to_indices(filtered_docs, vocabulary)
    return filtered_docs, filtered_labels, vocabulary, corpus
