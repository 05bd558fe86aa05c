import numpy as np


class NCRPNode:
    """
    This class represents a node (topic) of the nCRP tree.

    Each node has:
      - node_id   : stable integer id inside the owning TopicTree
      - parent    : id of the parent node (None for the root)
      - children  : list of child node ids
      - level_id  : which level of the hierarchy this node is at (0 = root)
      - n_w       : array of counts of each word w in this node/topic
      - n_sum     : total count of words assigned to this node
      - num_docs  : how many documents currently use this node in their path
    """

    __slots__ = ('node_id', 'parent', 'children', 'level_id', 'n_w', 'n_sum', 'num_docs')

    def __init__(self, node_id, vocab_size, parent=None, level_id=0):
        self.node_id = node_id
        self.parent = parent
        self.children = []
        self.level_id = level_id
        self.n_w = np.zeros(vocab_size, dtype=int)
        self.n_sum = 0
        self.num_docs = 0

    def __repr__(self):
        return (f'NCRPNode(idx={self.node_id}, level={self.level_id}, '
                f'docs={self.num_docs}, n_sum={self.n_sum}, parent={self.parent})')

    def is_root(self):
        return self.parent is None

    def is_empty(self):
        return self.num_docs == 0 and self.n_sum == 0

    def add_words(self, words, counts):
        self.n_w[words] += counts
        self.n_sum += int(np.sum(counts))

    def remove_words(self, words, counts):
        self.n_w[words] -= counts
        self.n_sum -= int(np.sum(counts))


class TopicTree:
    """
    Arena of ``NCRPNode`` objects addressed by integer ids.

    Parent and child links are ids, so removing a node is a dictionary
    deletion plus one unlink from its parent. Ids are never reused.
    """

    ROOT_ID = 0

    def __init__(self, depth, vocab_size):
        self.depth = depth
        self.vocab_size = vocab_size
        self.nodes = {}
        self.next_id = 0
        self.total_created_nodes = 0
        self._new_node(parent=None, level_id=0)

    def __repr__(self):
        return f'TopicTree(depth={self.depth}, nodes={len(self.nodes)})'

    def __len__(self):
        return len(self.nodes)

    def __contains__(self, node_id):
        return node_id in self.nodes

    def __getitem__(self, node_id):
        return self.nodes[node_id]

    @property
    def root(self):
        return self.nodes[self.ROOT_ID]

    def _new_node(self, parent, level_id):
        node = NCRPNode(self.next_id, self.vocab_size, parent=parent, level_id=level_id)
        self.nodes[node.node_id] = node
        self.next_id += 1
        self.total_created_nodes += 1
        return node

    def is_leaf_level(self, node_id):
        return self.nodes[node_id].level_id == self.depth - 1

    def add_child(self, node_id):
        """Create a new child node (topic) at the next level down."""
        parent = self.nodes[node_id]
        if parent.level_id >= self.depth - 1:
            raise ValueError(f"node {node_id} is at the deepest level and cannot have children")
        child = self._new_node(parent=node_id, level_id=parent.level_id + 1)
        parent.children.append(child.node_id)
        return child

    def grow_branch(self, node_id):
        """
        Create one new child per level below ``node_id`` until reaching the
        deepest level, and return the id of that leaf.
        """
        cursor = node_id
        while not self.is_leaf_level(cursor):
            cursor = self.add_child(cursor).node_id
        return cursor

    def path_to(self, node_id):
        """Return the list of node ids from root->node."""
        path = []
        cursor = node_id
        while cursor is not None:
            path.append(cursor)
            cursor = self.nodes[cursor].parent
        path.reverse()
        return path

    def remove(self, node_id):
        """Remove a childless, non-root node from the arena."""
        node = self.nodes[node_id]
        assert not node.is_root(), "the root node is never removed"
        assert not node.children, f"node {node_id} still has children"
        self.nodes[node.parent].children.remove(node_id)
        del self.nodes[node_id]

    def prune(self, node_id):
        """
        Starting at ``node_id`` and moving toward the root, remove every node
        left with no documents and no words. Stops at the first node in use.

        Returns
        -------
        list of int
            Ids of the removed nodes.
        """
        removed = []
        cursor = node_id
        while cursor is not None:
            node = self.nodes[cursor]
            if node.is_root() or not node.is_empty() or node.children:
                break
            parent = node.parent
            self.remove(cursor)
            removed.append(cursor)
            cursor = parent
        return removed

    def traverse(self, node_id=None):
        """
        A depth-first traversal (DFS) generator that yields each node in the
        hierarchy (root -> all descendants).
        """
        if node_id is None:
            node_id = self.ROOT_ID
        stack = [node_id]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def nodes_at_level(self, level):
        return [node for node in self.traverse() if node.level_id == level]

    def leaves(self):
        """Nodes at the deepest level."""
        return self.nodes_at_level(self.depth - 1)

    def hierarchy(self):
        """Map of node id -> list of child ids."""
        return {node.node_id: list(node.children) for node in self.traverse()}

    def check_consistency(self):
        """
        True when every non-root node has no more documents than its parent
        and no empty non-root node is left in the arena.
        """
        for node in self.nodes.values():
            if node.n_sum != int(node.n_w.sum()):
                return False
            if node.is_root():
                continue
            if node.num_docs > self.nodes[node.parent].num_docs:
                return False
            if node.is_empty():
                return False
        return True
