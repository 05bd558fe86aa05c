from math import log

import numpy as np
import pandas as pd
import pytest

from hlda_gibbs import HierarchicalLDA
from lda_gibbs import LDA
from topic_report import (document_table, jensen_shannon_divergence, summarise,
                          topic_table, tree_graph)


@pytest.fixture
def lda_model(fruit_animal_vocab, small_corpus):
    model = LDA(fruit_animal_vocab, num_topics=3, seed=2).initialize(small_corpus)
    model.run(10)
    return model


@pytest.fixture
def hlda_model(fruit_animal_vocab, small_corpus):
    model = HierarchicalLDA(fruit_animal_vocab, depth=3, seed=2).initialize(small_corpus)
    model.run(10)
    return model


def test_lda_topic_table(lda_model):
    table = topic_table(lda_model, n=2)
    assert list(table.columns) == ["topic", "tokens", "top_terms"]
    assert len(table) == 3
    assert table["tokens"].sum() == sum(len(d) for d in lda_model.documents)


def test_lda_document_table(lda_model, small_corpus):
    table = document_table(lda_model)
    assert table.shape == (len(small_corpus), 3)
    np.testing.assert_allclose(table.sum(axis=1), 1.0)


def test_hlda_tables(hlda_model, small_corpus):
    nodes = topic_table(hlda_model, n=2)
    assert len(nodes) == len(hlda_model.tree)
    assert nodes.iloc[0]["node_id"] == 0
    assert nodes.loc[nodes["level"] == 0, "documents"].tolist() == [len(small_corpus)]

    docs = document_table(hlda_model)
    assert len(docs) == len(small_corpus)
    assert all(len(path) == 3 for path in docs["path"])


def test_tree_graph_has_one_edge_per_non_root_node(hlda_model):
    graph = tree_graph(hlda_model)
    assert graph.source.count(" -> ") == len(hlda_model.tree) - 1
    for node_id in hlda_model.tree.nodes:
        assert f"Docs: {hlda_model.tree[node_id].num_docs}" in graph.source


def test_summarise_appends_a_row(hlda_model):
    df = summarise(pd.DataFrame(), hlda_model, "small", documents=[0, 1], elapsed=0.1)
    df = summarise(df, hlda_model, "small-again", documents=[2], elapsed=0.2)
    assert df["Model"].tolist() == ["small", "small-again"]
    assert df.iloc[0]["total_table"] == len(hlda_model.tree)


def test_jensen_shannon_divergence():
    assert jensen_shannon_divergence([1, 2, 3], [2, 4, 6]) == pytest.approx(0.0, abs=1e-9)
    assert jensen_shannon_divergence([1, 0], [0, 1]) == pytest.approx(log(2))
    assert jensen_shannon_divergence([0, 0], [0.5, 0.5]) == pytest.approx(0.0, abs=1e-9)
    assert jensen_shannon_divergence([0.9, 0.1], [0.1, 0.9]) == pytest.approx(
        jensen_shannon_divergence([0.1, 0.9], [0.9, 0.1]))
