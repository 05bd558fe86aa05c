import logging
import time
from collections import namedtuple
from math import log

import numpy as np

from lda_gibbs import encode_corpus
from ncrp_tree import TopicTree
from topic_config import (HLDAConfig, InvalidConfiguration, ModelState,
                          ModelStateError)
from topic_sampling import (dirichlet_multinomial_loglik, make_rng, normalize,
                            sample_categorical, sample_log_categorical,
                            stick_breaking_level_prior)

logger = logging.getLogger(__name__)

# One scored option of the path sampler: an existing leaf-level node
# (is_new=False) or a new branch opened below node_id (is_new=True).
PathCandidate = namedtuple('PathCandidate', ['node_id', 'is_new'])

# Result of inference on an unseen document. ``path`` holds node ids from the
# root down, with None where the document would need a topic the tree lacks.
HLDAInference = namedtuple('HLDAInference', ['path', 'level_distribution'])


##############################################################################
# Hierarchical LDA main class
##############################################################################
class HierarchicalLDA:
    """
    This class implements hierarchical LDA using the nested CRP,
    following the notation and sampling approach in Blei (2004).

    Every document owns a path from the root to a node at the deepest level
    and every token owns a level on that path. A Gibbs iteration visits the
    documents in order and, for each one, resamples the path (nCRP prior times
    the Dirichlet-multinomial likelihood of the document's words per level)
    and then the level of every token (truncated GEM prior times the word
    probability at that level's node).
    """

    def __init__(self, vocabulary, depth=3, beta=0.1, gamma=1.0, eta=1.0,
                 seed=0, config=None):
        """
        Parameters
        ----------
        vocabulary : sequence
            Maps word_id -> word; only ``len`` and indexing are used.
        depth : int
            Number of levels in the topic hierarchy.
        beta : float or sequence of float
            Topic-word Dirichlet smoothing, optionally one value per level.
        gamma : float
            nCRP parameter controlling how likely new branches are created.
        eta : float
            GEM stick-breaking parameter; smaller values favour shallow levels.
        seed : int or None
        config : HLDAConfig, optional
            Replaces the keyword options above when given.
        """
        if config is None:
            config = HLDAConfig(depth=depth, beta=beta, gamma=gamma, eta=eta, seed=seed)
        config.validate()
        if len(vocabulary) == 0:
            raise InvalidConfiguration("vocabulary must not be empty")

        self.config = config
        self.vocab = vocabulary
        self.V = len(vocabulary)
        self.L = config.depth
        self.gamma = config.gamma
        self.eta = config.eta
        self.betas = np.array(config.level_betas())
        self.beta_sums = self.betas * self.V

        self.rng = make_rng(config.seed)
        self.state = ModelState.UNINITIALIZED
        self.iterations_done = 0

        self.tree = TopicTree(self.L, self.V)
        self.documents = []
        self.num_docs = 0
        # Leaf node id of each doc's path c_d
        self.doc_leaf = []
        # Level assignment z_{di} of each token, and its per-level totals
        self.z_tokens = []
        self.level_counts = []

    def __repr__(self):
        return (f'HierarchicalLDA(depth={self.L}, V={self.V}, docs={self.num_docs}, '
                f'nodes={len(self.tree)}, state={self.state.value})')

    @property
    def root(self):
        return self.tree.root

    def initialize(self, corpus):
        """
        Seat every document on a path drawn from the nCRP prior and give each
        of its tokens a uniformly random level on that path.

        Parameters
        ----------
        corpus : list of lists
            Each item is a document, which is a list of integer word IDs.
        """
        if self.state is not ModelState.UNINITIALIZED:
            raise ModelStateError("model is already initialized")
        if len(corpus) == 0:
            raise InvalidConfiguration("corpus must contain at least one document")
        self.documents = encode_corpus(corpus, self.V)
        self.num_docs = len(self.documents)

        for doc in self.documents:
            # "Seat" doc d at each level from root down
            cursor = TopicTree.ROOT_ID
            while not self.tree.is_leaf_level(cursor):
                cursor = self._ncrp_draw_child(cursor)
            self._add_doc_to_path(cursor)
            self.doc_leaf.append(cursor)

            z_doc = self.rng.randint(self.L, size=len(doc))
            self.z_tokens.append(z_doc)
            self.level_counts.append(np.bincount(z_doc, minlength=self.L))
            self._add_words_to_path(self.tree.path_to(cursor), self._level_histograms(doc, z_doc))

        self.state = ModelState.INITIALIZED
        logger.info("initialized hLDA with %d documents, depth=%d, V=%d, %d nodes",
                    self.num_docs, self.L, self.V, len(self.tree))
        return self

    def _ncrp_draw_child(self, node_id):
        """
        Draw a child according to the nested CRP:
          Probability of picking an existing child node:
              (child.num_docs) / (self.num_docs + gamma)
          Probability of creating a new child:
              gamma / (self.num_docs + gamma)
        """
        node = self.tree[node_id]
        probs = [self.gamma]
        probs.extend(self.tree[ch].num_docs for ch in node.children)
        chosen_idx = sample_categorical(self.rng, normalize(probs))
        if chosen_idx == 0:
            return self.tree.add_child(node_id).node_id
        return node.children[chosen_idx - 1]

    ##########################################################################
    # Count bookkeeping
    ##########################################################################
    def _level_histograms(self, doc, z_doc):
        """(distinct word ids, counts) of the tokens at each level."""
        return [np.unique(doc[z_doc == lvl], return_counts=True) for lvl in range(self.L)]

    def _add_doc_to_path(self, leaf_id):
        for node_id in self.tree.path_to(leaf_id):
            self.tree[node_id].num_docs += 1

    def _add_words_to_path(self, path, level_hist):
        for node_id, (words, counts) in zip(path, level_hist):
            self.tree[node_id].add_words(words, counts)

    def _remove_doc(self, d_idx, level_hist):
        """Take document ``d_idx`` and its words off its path, then prune."""
        leaf_id = self.doc_leaf[d_idx]
        for node_id, (words, counts) in zip(self.tree.path_to(leaf_id), level_hist):
            node = self.tree[node_id]
            node.num_docs -= 1
            node.remove_words(words, counts)
        removed = self.tree.prune(leaf_id)
        if removed:
            logger.debug("pruned nodes %s after removing document %d", removed, d_idx)

    ##########################################################################
    # Sampling
    ##########################################################################
    def step(self):
        """One Gibbs iteration: path then levels for every document in order."""
        self._require_initialized()
        for d_idx in range(self.num_docs):
            self._sample_path_for_doc(d_idx)
            self._sample_levels_for_doc(d_idx)
        self.state = ModelState.SAMPLING
        self.iterations_done += 1

    def run(self, iterations, display_interval=None, top_n=5):
        """
        Run collapsed Gibbs sampling for hierarchical LDA.

        Parameters
        ----------
        iterations : int
            Total number of Gibbs sampling iterations.
        display_interval : int, optional
            Print out topics every N iterations.
        top_n : int
            Number of top words to display for each node.

        Returns
        -------
        float
            Elapsed time in minutes.
        """
        self._require_initialized()
        if iterations < 0:
            raise InvalidConfiguration("iterations must be >= 0")
        logger.info("starting hierarchical LDA sampling for %d iterations", iterations)
        start_time = time.time()

        for it in range(iterations):
            self.step()
            logger.debug("iteration %d, number of nodes %d", self.iterations_done, len(self.tree))
            if display_interval and (it + 1) % display_interval == 0:
                print(f"Iteration {it + 1}")
                self.exhibit_topics(top_n=top_n)

        self.state = ModelState.CONVERGED
        total_time_minutes = round((time.time() - start_time) / 60, 2)
        logger.info("hLDA sampling finished: %d iterations, %d live nodes, %d created (%.2f min)",
                    self.iterations_done, len(self.tree), self.tree.total_created_nodes,
                    total_time_minutes)
        return total_time_minutes

    ##########################################################################
    # PATH SAMPLING: Sample c_d for each document
    ##########################################################################
    def _sample_path_for_doc(self, d_idx):
        """
        Sample a new path c_d for document d via the nCRP prior * doc-likelihood.
        """
        doc = self.documents[d_idx]
        level_hist = self._level_histograms(doc, self.z_tokens[d_idx])

        # 1) Remove the doc from its old path, pruning emptied nodes
        self._remove_doc(d_idx, level_hist)

        # 2) Score every existing leaf and every "new branch here" option
        candidates, scores = self.score_paths(level_hist, allow_new_nodes=True)

        # 3) Sample, growing a single new branch if one was chosen
        chosen = candidates[sample_log_categorical(self.rng, scores)]
        new_leaf = chosen.node_id
        if chosen.is_new:
            new_leaf = self.tree.grow_branch(chosen.node_id)

        # 4) Add doc back into the new path
        self._add_doc_to_path(new_leaf)
        self._add_words_to_path(self.tree.path_to(new_leaf), level_hist)
        self.doc_leaf[d_idx] = new_leaf

    def _level_loglik(self, node, level, hist):
        words, counts = hist
        if node is None:
            return dirichlet_multinomial_loglik(None, 0, words, counts,
                                                self.betas[level], self.V)
        return dirichlet_multinomial_loglik(node.n_w, node.n_sum, words, counts,
                                            self.betas[level], self.V)

    def score_paths(self, level_hist, allow_new_nodes=True):
        """
        Log prior + log likelihood of every path a document could take.

        The tree is only read. The document being scored must not be counted
        in the tree.

        Parameters
        ----------
        level_hist : list of (words, counts)
            The document's word histogram at each level.
        allow_new_nodes : bool
            Whether "open a new branch" options are scored.

        Returns
        -------
        candidates : list of PathCandidate
        scores : list of float
        """
        # new_branch[lvl] = likelihood of levels lvl..L-1 all being brand-new topics
        new_branch = np.zeros(self.L + 1)
        for lvl in range(self.L - 1, -1, -1):
            new_branch[lvl] = new_branch[lvl + 1] + self._level_loglik(None, lvl, level_hist[lvl])

        candidates = []
        scores = []
        self._accumulate_scores(TopicTree.ROOT_ID, 0.0, 0.0, level_hist, new_branch,
                                allow_new_nodes, candidates, scores)
        return candidates, scores

    def _accumulate_scores(self, node_id, log_prior, log_lik, level_hist, new_branch,
                           allow_new_nodes, candidates, scores):
        """Recursively compute the nCRP prior and word likelihood from root down."""
        node = self.tree[node_id]
        depth = node.level_id
        log_lik = log_lik + self._level_loglik(node, depth, level_hist[depth])

        if depth == self.L - 1:
            candidates.append(PathCandidate(node_id, False))
            scores.append(log_prior + log_lik)
            return

        denom = node.num_docs + self.gamma
        for child_id in node.children:
            child = self.tree[child_id]
            self._accumulate_scores(child_id, log_prior + log(child.num_docs / denom), log_lik,
                                    level_hist, new_branch, allow_new_nodes, candidates, scores)

        if allow_new_nodes:
            candidates.append(PathCandidate(node_id, True))
            scores.append(log_prior + log(self.gamma / denom) + log_lik + new_branch[depth + 1])

    ##########################################################################
    # LEVEL (z_{di}) SAMPLING: Resample each token in doc
    ##########################################################################
    def level_probabilities(self, d_idx, token_i):
        """
        Normalized distribution over levels used to resample token ``token_i``
        of document ``d_idx``, computed with that token left out.
        """
        self._require_initialized()
        path = [self.tree[n] for n in self.tree.path_to(self.doc_leaf[d_idx])]
        w_id = self.documents[d_idx][token_i]
        old_lv = self.z_tokens[d_idx][token_i]
        own = np.zeros(self.L, dtype=int)
        own[old_lv] = 1
        n_w = np.array([node.n_w[w_id] for node in path]) - own
        n_sum = np.array([node.n_sum for node in path]) - own
        prior = stick_breaking_level_prior(self.level_counts[d_idx] - own, self.eta)
        return normalize(prior * (n_w + self.betas) / (n_sum + self.beta_sums))

    def _sample_levels_for_doc(self, d_idx):
        """
        For each token in doc d_idx, resample which level z_{di} it belongs to,
        among the L nodes on that doc's path.
        """
        doc_words = self.documents[d_idx]
        z_doc = self.z_tokens[d_idx]
        level_counts = self.level_counts[d_idx]
        path_arr = [self.tree[n] for n in self.tree.path_to(self.doc_leaf[d_idx])]

        for i, w_id in enumerate(doc_words):
            old_lv = z_doc[i]
            level_counts[old_lv] -= 1
            path_arr[old_lv].n_w[w_id] -= 1
            path_arr[old_lv].n_sum -= 1

            prior = stick_breaking_level_prior(level_counts, self.eta)
            word_lik = np.array([(node.n_w[w_id] + self.betas[lv]) /
                                 (node.n_sum + self.beta_sums[lv])
                                 for lv, node in enumerate(path_arr)])
            new_lv = sample_categorical(self.rng, normalize(prior * word_lik))

            z_doc[i] = new_lv
            level_counts[new_lv] += 1
            path_arr[new_lv].n_w[w_id] += 1
            path_arr[new_lv].n_sum += 1

    ##########################################################################
    # Read-out
    ##########################################################################
    def top_term_ids(self, node_id, n):
        """
        Ids of the ``n`` words with the highest weight at ``node_id``; ties go
        to the lower id. A node without words gives an empty list.
        """
        self._require_initialized()
        if n <= 0:
            raise InvalidConfiguration("n must be > 0")
        node = self.tree[node_id]
        if node.n_sum == 0:
            return []
        order = np.argsort(-node.n_w, kind="stable")
        return [int(w) for w in order[:n]]

    def top_terms(self, node_id, n):
        return [self.vocab[w] for w in self.top_term_ids(node_id, n)]

    def topics(self, n, min_documents=0):
        """
        Top ``n`` terms of every node visited by at least ``min_documents``
        documents, keyed by node id.
        """
        self._require_initialized()
        return {node.node_id: self.top_terms(node.node_id, n)
                for node in self.tree.traverse() if node.num_docs >= min_documents}

    def topic_word_distribution(self):
        """Map of node id -> smoothed word distribution of that node."""
        self._require_initialized()
        return {node.node_id: (node.n_w + self.betas[node.level_id]) /
                              (node.n_sum + self.beta_sums[node.level_id])
                for node in self.tree.traverse()}

    def document_path(self, d_idx):
        """Node ids of the path of document ``d_idx``, root first."""
        self._require_initialized()
        return self.tree.path_to(self.doc_leaf[d_idx])

    def document_level_distribution(self, d_idx):
        """Smoothed proportions of document ``d_idx`` over its path's levels."""
        self._require_initialized()
        return stick_breaking_level_prior(self.level_counts[d_idx], self.eta)

    def hierarchy(self):
        """Map of node id -> list of child node ids."""
        return self.tree.hierarchy()

    def tree_structure(self):
        """One record per node, root first, for rendering the hierarchy."""
        return [{'node_id': node.node_id,
                 'parent': node.parent,
                 'level': node.level_id,
                 'documents': node.num_docs,
                 'tokens': node.n_sum,
                 'children': list(node.children)}
                for node in self.tree.traverse()]

    def check_consistency(self):
        """
        Rebuild node statistics from the documents' paths and levels and
        compare them with the tree.
        """
        expected_words = {node_id: np.zeros(self.V, dtype=int) for node_id in self.tree.nodes}
        expected_docs = dict.fromkeys(self.tree.nodes, 0)
        for d_idx, doc in enumerate(self.documents):
            path = self.tree.path_to(self.doc_leaf[d_idx])
            if len(path) != self.L:
                return False
            for node_id in path:
                expected_docs[node_id] += 1
            z_doc = self.z_tokens[d_idx]
            if not np.array_equal(np.bincount(z_doc, minlength=self.L), self.level_counts[d_idx]):
                return False
            for w_id, lv in zip(doc, z_doc):
                expected_words[path[lv]][w_id] += 1
        for node_id, node in self.tree.nodes.items():
            if node.num_docs != expected_docs[node_id]:
                return False
            if not np.array_equal(node.n_w, expected_words[node_id]):
                return False
        return self.tree.check_consistency()

    ##########################################################################
    # Inference on unseen documents
    ##########################################################################
    def inference(self, document, iterations=50, seed=None, allow_new_nodes=False):
        """
        Estimate the path and level proportions of an unseen document.

        The document's path and levels are sampled against a frozen tree: its
        words live in a local overlay that is discarded afterwards.

        Parameters
        ----------
        document : list of int
        iterations : int
        seed : int, optional
            Seed of the inference generator; defaults to the model seed.
        allow_new_nodes : bool
            If False, only paths that already exist are considered.

        Returns
        -------
        HLDAInference
        """
        if self.state is not ModelState.CONVERGED:
            raise ModelStateError("inference needs a trained model; call run() first")
        if iterations <= 0:
            raise InvalidConfiguration("iterations must be > 0")
        doc = encode_corpus([document], self.V)[0]
        if len(doc) == 0:
            return HLDAInference([], [])
        rng = make_rng(self.config.seed if seed is None else seed)

        z_doc = rng.randint(self.L, size=len(doc))
        level_counts = np.bincount(z_doc, minlength=self.L)
        local_nw = np.zeros((self.L, self.V), dtype=int)
        np.add.at(local_nw, (z_doc, doc), 1)
        path = None

        for _ in range(iterations):
            # 1) Path, scored against the tree alone
            candidates, scores = self.score_paths(self._level_histograms(doc, z_doc),
                                                  allow_new_nodes=allow_new_nodes)
            chosen = candidates[sample_log_categorical(rng, scores)]
            path = self.tree.path_to(chosen.node_id)
            path = path + [None] * (self.L - len(path))
            base_nw = np.array([self.tree[n].n_w if n is not None else np.zeros(self.V, dtype=int)
                                for n in path])
            base_sum = np.array([self.tree[n].n_sum if n is not None else 0 for n in path])

            # 2) Levels, against tree counts plus the document's own overlay
            for i, w_id in enumerate(doc):
                old_lv = z_doc[i]
                level_counts[old_lv] -= 1
                local_nw[old_lv, w_id] -= 1

                prior = stick_breaking_level_prior(level_counts, self.eta)
                word_lik = ((base_nw[:, w_id] + local_nw[:, w_id] + self.betas) /
                            (base_sum + level_counts + self.beta_sums))
                new_lv = sample_categorical(rng, normalize(prior * word_lik))

                z_doc[i] = new_lv
                level_counts[new_lv] += 1
                local_nw[new_lv, w_id] += 1

        distribution = stick_breaking_level_prior(level_counts, self.eta)
        return HLDAInference(path, [float(p) for p in distribution])

    ##########################################################################
    # Helper / Display
    ##########################################################################
    def exhibit_topics(self, top_n=5, show_counts=True, structure=False):
        """
        If structure=False:
            Print out the topics from the root downward with top words.
        If structure=True:
            Print out just the structure:
            Node X (level=Y, children=Z)
        """
        self._display_subtree(TopicTree.ROOT_ID, indent=0, top_n=top_n,
                              show_counts=show_counts, structure=structure)

    def _display_subtree(self, node_id, indent, top_n, show_counts, structure):
        node = self.tree[node_id]
        if structure:
            prefix = "  " * indent
            print(f"{prefix}Topic Node {node.node_id} "
                  f"(level={node.level_id}, children={len(node.children)})")
        else:
            prefix = "    " * indent
            ids = self.top_term_ids(node_id, top_n)
            if show_counts:
                desc = ', '.join(f'{self.vocab[w]}({node.n_w[w]})' for w in ids)
            else:
                desc = ', '.join(str(self.vocab[w]) for w in ids)
            print(f"{prefix}Topic Node {node.node_id} (level={node.level_id}, "
                  f"docs={node.num_docs}): {desc}")

        for child_id in node.children:
            self._display_subtree(child_id, indent + 1, top_n, show_counts, structure)

    ## Hyperparameter testing result analysis
    def gamma_eval(self, levels=None):
        """
        Evaluate the effect of gamma by counting how many 'tables' (nodes)
        exist at each level in the nCRP tree.

        Parameters
        ----------
        levels : int or None
            If given, only compute for levels [0..levels-1].
            If None, use self.L (all levels).

        Returns
        -------
        list of int
            counts[i] = number of nodes at level i
        """
        if levels is None or levels > self.L:
            levels = self.L

        level_counts = [0] * levels
        for node in self.tree.traverse():
            if node.level_id < levels:
                level_counts[node.level_id] += 1
        return level_counts

    def alpha_eval(self, document_id):
        """
        Raw fraction of a document's tokens assigned to each level of its path.
        Summation over levels is 1.0 (all zeros for an empty document).
        """
        if document_id < 0 or document_id >= self.num_docs:
            raise ValueError(f"document_id must be in [0, {self.num_docs - 1}]")

        doc_length = len(self.z_tokens[document_id])
        if doc_length == 0:
            return [0.0] * self.L
        return (self.level_counts[document_id] / float(doc_length)).tolist()

    def eta_eval(self, n=5):
        """
        Level by level, the average fraction of each topic's total word count
        contributed by its top-n words. Levels without topics report 0.
        """
        level_coverages = [[] for _ in range(self.L)]

        for node in self.tree.traverse():
            if node.n_sum > 0:
                top_n_ids = np.argsort(node.n_w)[::-1][:n]
                coverage = node.n_w[top_n_ids].sum() / node.n_sum
            else:
                coverage = 0.0
            level_coverages[node.level_id].append(coverage)

        return [float(np.mean(vals)) if vals else 0.0 for vals in level_coverages]

    def _require_initialized(self):
        if self.state is ModelState.UNINITIALIZED:
            raise ModelStateError("call initialize() before sampling or reading the model")
