"""
Tabular and graphical read-outs of trained topic models.

Nothing here mutates a model; every helper only reads its final counts.
"""

import numpy as np
import pandas as pd
from graphviz import Digraph


def _is_hierarchical(model):
    return hasattr(model, 'tree')


def topic_table(model, n=5):
    """
    One row per topic (LDA) or per tree node (hLDA) with its top ``n`` terms.

    Returns
    -------
    pandas.DataFrame
    """
    if _is_hierarchical(model):
        rows = []
        for record in model.tree_structure():
            record = dict(record)
            record['n_children'] = len(record.pop('children'))
            record['top_terms'] = model.top_terms(record['node_id'], n)
            rows.append(record)
        return pd.DataFrame(rows, columns=['node_id', 'parent', 'level', 'documents',
                                           'tokens', 'n_children', 'top_terms'])

    rows = [{'topic': t,
             'tokens': int(model.counts.topic_total[t]),
             'top_terms': model.top_terms(t, n)}
            for t in range(model.K)]
    return pd.DataFrame(rows, columns=['topic', 'tokens', 'top_terms'])


def document_table(model):
    """
    Per-document read-out: the topic mixture (LDA) or the path and level
    proportions (hLDA).
    """
    if _is_hierarchical(model):
        rows = [{'document': d,
                 'leaf': model.doc_leaf[d],
                 'path': model.document_path(d),
                 'level_distribution': model.document_level_distribution(d).tolist()}
                for d in range(model.num_docs)]
        return pd.DataFrame(rows, columns=['document', 'leaf', 'path', 'level_distribution'])

    theta = model.document_topic_distribution()
    frame = pd.DataFrame(theta, columns=[f'topic_{t}' for t in range(model.K)])
    frame.index.name = 'document'
    return frame


def summarise(df, hlda_model, model_name, documents, elapsed):
    """
    Append one row of hyperparameter diagnostics for ``hlda_model`` to ``df``.
    """
    data = {
        'Model': model_name,
        'gamma': hlda_model.gamma,
        'eta': hlda_model.eta,
        'beta': hlda_model.betas.tolist(),
        'time': elapsed,
        'total_table': len(hlda_model.tree),
        'gamma_eval': hlda_model.gamma_eval(),
        'eta_eval': [round(val, 2) for val in hlda_model.eta_eval()],
        'alpha_eval': [[round(val, 2) for val in hlda_model.alpha_eval(d)] for d in documents],
    }
    return pd.concat([df, pd.DataFrame([data])], ignore_index=True)


def tree_graph(hlda_model, n=3, show_level_info=True):
    """
    Build a Graphviz ``Digraph`` of the topic tree, labelling each node with
    its document count and top ``n`` terms.
    """
    graph = Digraph(comment='hLDA Tree')
    graph.attr('node', shape='box', style='filled', color='lightblue')

    for node in hlda_model.tree.traverse():
        words = ', '.join(str(w) for w in hlda_model.top_terms(node.node_id, n))
        label = f"{node.node_id}"
        if show_level_info:
            label += f"\nLevel {node.level_id}"
        label += f"\nDocs: {node.num_docs}\nWords: {words}"
        graph.node(str(node.node_id), label)
        if node.parent is not None:
            graph.edge(str(node.parent), str(node.node_id))
    return graph


def jensen_shannon_divergence(p, q, eps=1e-12):
    """
    Jensen-Shannon divergence between two word distributions (or raw count
    vectors, which are normalized first; an all-zero vector becomes uniform).
    """
    p = np.asarray(p, dtype=np.float64)
    q = np.asarray(q, dtype=np.float64)
    p = p / p.sum() if p.sum() > 0 else np.ones_like(p) / len(p)
    q = q / q.sum() if q.sum() > 0 else np.ones_like(q) / len(q)

    m = 0.5 * (p + q)

    # Only indices where the first distribution is nonzero contribute.
    def kl_divergence(a, b):
        mask = a > 0
        return np.sum(a[mask] * np.log(a[mask] / (b[mask] + eps)))

    return float(0.5 * kl_divergence(p, m) + 0.5 * kl_divergence(q, m))
