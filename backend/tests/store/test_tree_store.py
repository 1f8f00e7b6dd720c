"""Contract tests for TreeStore: CRUD, traversal and integrity invariants."""

import random

import pytest

from inferflow.errors import NotFoundError, SchemaError, ValidationError
from inferflow.models import ConversationNode, ConversationTree, Position
from inferflow.trees.store import TreeStore, check_integrity
from tests.fixtures import assert_tree_consistent, build_branching_store, make_node


class TestAddNode:
    def test_root_node_goes_into_root_ids(self, store: TreeStore):
        store.add_node(make_node("n1", question="Q1", answer="A1"))
        assert store.tree.root_ids == ["n1"]
        assert [n.id for n in store.get_node_chain("n1")] == ["n1"]

    def test_child_is_linked_under_parent(self, store: TreeStore):
        store.add_node(make_node("n1"))
        store.add_node(make_node("n2", "n1"))
        assert len(store.tree.nodes) == 2
        assert store.get_node("n1").children_ids == ["n2"]
        assert store.tree.root_ids == ["n1"]
        assert [n.id for n in store.get_node_chain("n2")] == ["n1", "n2"]

    def test_children_keep_insertion_order(self, store: TreeStore):
        store.add_node(make_node("p"))
        for cid in ("c3", "c1", "c2"):
            store.add_node(make_node(cid, "p"))
        assert store.get_node("p").children_ids == ["c3", "c1", "c2"]

    def test_duplicate_id_rejected(self, store: TreeStore):
        store.add_node(make_node("n1"))
        with pytest.raises(ValidationError, match="Duplicate"):
            store.add_node(make_node("n1"))
        assert store.tree.root_ids == ["n1"]

    def test_duplicate_id_rejected_across_branches(self, store: TreeStore):
        """Ids are unique forest-wide, not per branch."""
        store.add_node(make_node("r1"))
        store.add_node(make_node("r2"))
        store.add_node(make_node("x", "r1"))
        with pytest.raises(ValidationError):
            store.add_node(make_node("x", "r2"))
        assert store.get_node("r2").children_ids == []

    def test_unknown_parent_rejected(self, store: TreeStore):
        with pytest.raises(ValidationError, match="Parent node does not exist"):
            store.add_node(make_node("n2", "missing"))
        assert len(store) == 0
        assert store.tree.root_ids == []

    def test_prepopulated_children_rejected(self, store: TreeStore):
        with pytest.raises(ValidationError):
            store.add_node(make_node("n1", children_ids=["ghost"]))
        assert len(store) == 0

    def test_accepts_camel_case_dict(self, store: TreeStore):
        store.add_node({"id": "n1", "question": "Q"})
        node = store.add_node({"id": "n2", "parentId": "n1", "includeInContext": False})
        assert node.parent_id == "n1"
        assert node.include_in_context is False

    def test_stored_node_is_a_copy(self, store: TreeStore):
        """Mutating the caller's object does not reach into the store."""
        original = make_node("n1", question="Before")
        store.add_node(original)
        original.question = "After"
        assert store.get_node("n1").question == "Before"


class TestCreateNode:
    def test_fills_identity_and_metadata(self, store: TreeStore):
        node = store.create_node("What is React?", "A library.", model="gpt-4o", tokens=12)
        assert node.id
        assert node.name == "Question 1"
        assert node.metadata is not None
        assert node.metadata.created_at <= node.metadata.updated_at
        assert store.tree.root_ids == [node.id]
        assert node.tokens == 12

    def test_child_gets_dotted_name(self, store: TreeStore):
        root = store.create_node("Root")
        child = store.create_node("Follow-up", parent_id=root.id)
        assert child.name == "Question 1.1"
        second = store.create_node("Another", parent_id=root.id)
        assert second.name == "Question 1.2"


class TestUpdateNode:
    def test_shallow_merge(self, store: TreeStore):
        store.add_node(make_node("n1", question="Q", answer=""))
        updated = store.update_node("n1", {"answer": "New answer", "model": "claude"})
        assert updated.answer == "New answer"
        assert updated.model == "claude"
        assert updated.question == "Q"

    def test_keyword_fields_and_aliases(self, store: TreeStore):
        store.add_node(make_node("n1"))
        store.update_node("n1", {"isBookmarked": True}, position={"x": 10, "y": 20})
        node = store.get_node("n1")
        assert node.is_bookmarked is True
        assert node.position == Position(x=10, y=20)

    def test_updates_in_place(self, store: TreeStore):
        node = store.add_node(make_node("n1"))
        store.update_node("n1", tags=["important"])
        assert node.tags == ["important"]

    def test_unknown_id_is_a_reported_no_op(self, store: TreeStore, caplog):
        assert store.update_node("missing", answer="x") is None
        assert "missing" in caplog.text

    def test_unknown_id_strict_raises(self, store: TreeStore):
        with pytest.raises(NotFoundError):
            store.update_node("missing", {"answer": "x"}, strict=True)

    @pytest.mark.parametrize("field", ["id", "parent_id", "parentId", "children_ids"])
    def test_structural_fields_rejected(self, store: TreeStore, field: str):
        store.add_node(make_node("n1"))
        store.add_node(make_node("n2"))
        with pytest.raises(ValidationError, match="structural"):
            store.update_node("n2", {field: "n1"})
        assert store.get_node("n2").parent_id is None
        assert_tree_consistent(store)

    def test_unknown_field_rejected(self, store: TreeStore):
        store.add_node(make_node("n1"))
        with pytest.raises(ValidationError, match="Unknown node field"):
            store.update_node("n1", {"colour": "red"})

    def test_invalid_value_rejected_without_partial_write(self, store: TreeStore):
        store.add_node(make_node("n1", answer="Keep"))
        with pytest.raises(ValidationError):
            store.update_node("n1", {"answer": "Changed", "type": "not-a-type"})
        assert store.get_node("n1").answer == "Keep"

    def test_new_answer_drops_cached_sections(self, store: TreeStore):
        store.add_node(make_node("n1", answer="Old"))
        store.update_node(
            "n1", answer_sections=[{"id": "s", "text": "Old", "index": 0}]
        )
        assert store.get_node("n1").answer_sections is not None
        store.update_node("n1", answer="Fresh\n\nText")
        assert store.get_node("n1").answer_sections is None

    def test_content_change_bumps_updated_at(self, store: TreeStore):
        node = store.create_node("Q")
        before = node.metadata.updated_at
        store.update_node(node.id, answer="Arrived")
        assert node.metadata.updated_at >= before


class TestDeleteNode:
    def test_delete_root_removes_everything_under_it(self, store: TreeStore):
        store.add_node(make_node("n1"))
        store.add_node(make_node("n2", "n1"))
        removed = store.delete_node("n1")
        assert removed == ["n1", "n2"]
        assert len(store.tree.nodes) == 0
        assert store.tree.root_ids == []

    def test_delete_interior_unlinks_from_parent(self):
        store = build_branching_store()
        removed = store.delete_node("a")
        assert set(removed) == {"a", "a1", "a2"}
        assert store.get_node("r1").children_ids == ["b"]
        assert set(store.tree.nodes) == {"r1", "b", "r2"}
        assert_tree_consistent(store)

    def test_no_remaining_node_references_removed_ids(self):
        store = build_branching_store()
        removed = set(store.delete_node("r1"))
        for node in store.tree.nodes.values():
            assert node.parent_id not in removed
            assert not removed & set(node.children_ids)
        assert store.tree.root_ids == ["r2"]

    def test_delete_leaf_keeps_siblings(self):
        store = build_branching_store()
        store.delete_node("a1")
        assert store.get_node("a").children_ids == ["a2"]

    def test_unknown_id(self, store: TreeStore):
        assert store.delete_node("missing") == []
        with pytest.raises(NotFoundError):
            store.delete_node("missing", strict=True)


class TestFlags:
    def test_toggle_collapse_does_not_touch_structure(self):
        store = build_branching_store()
        shape = {nid: list(n.children_ids) for nid, n in store.tree.nodes.items()}
        assert store.toggle_collapse("a") is True
        assert store.toggle_collapse("a") is False
        assert store.toggle_collapse("a") is True
        assert {nid: n.children_ids for nid, n in store.tree.nodes.items()} == shape
        assert store.tree.root_ids == ["r1", "r2"]
        assert store.get_descendant_ids("a") == ["a1", "a2"]

    def test_toggle_bookmark(self, store: TreeStore):
        store.add_node(make_node("n1"))
        assert store.toggle_bookmark("n1") is True
        assert store.get_node("n1").is_bookmarked is True

    def test_toggle_missing(self, store: TreeStore):
        assert store.toggle_collapse("missing") is None
        with pytest.raises(NotFoundError):
            store.toggle_collapse("missing", strict=True)

    def test_set_include_in_context_skips_missing(self):
        store = build_branching_store()
        changed = store.set_include_in_context(["r1", "missing", "a"], False)
        assert changed == ["r1", "a"]
        assert store.get_node("r1").include_in_context is False


class TestChain:
    def test_chain_is_root_first(self):
        store = build_branching_store()
        chain = store.get_node_chain("a2")
        assert [n.id for n in chain] == ["r1", "a", "a2"]
        assert chain[0].parent_id is None
        for prev, node in zip(chain, chain[1:]):
            assert node.parent_id == prev.id

    def test_unknown_id_gives_empty_chain(self, store: TreeStore):
        assert store.get_node_chain("missing") == []

    def test_cycle_is_broken_and_reported(self):
        """A corrupted parent cycle stops the walk instead of looping."""
        store = TreeStore()
        store.add_node(make_node("a"))
        store.add_node(make_node("b", "a"))
        # Corrupt the tree behind the store's back.
        store.tree.nodes["a"].parent_id = "b"
        chain = store.get_node_chain("b")
        assert [n.id for n in chain] == ["a", "b"]
        assert len(store.integrity_errors) == 1
        assert store.integrity_errors[0].node_id == "b"

    def test_depth(self):
        store = build_branching_store()
        assert store.get_depth("r1") == 0
        assert store.get_depth("a1") == 2
        assert store.get_depth("missing") == -1

    def test_descendants_preorder(self):
        store = build_branching_store()
        assert store.get_descendant_ids("r1") == ["a", "a1", "a2", "b"]
        assert store.get_descendant_ids("r1", include_self=True)[0] == "r1"


class TestGenerateNodeName:
    def test_root_names_count_roots(self, store: TreeStore):
        assert store.generate_node_name(None) == "Question 1"
        store.add_node(make_node("r1", name="Question 1"))
        assert store.generate_node_name(None) == "Question 2"

    def test_child_names_extend_parent(self, store: TreeStore):
        store.add_node(make_node("r1", name="Question 1"))
        assert store.generate_node_name("r1") == "Question 1.1"
        store.add_node(make_node("c1", "r1", name="Question 1.1"))
        assert store.generate_node_name("r1") == "Question 1.2"

    def test_skips_names_taken_after_delete(self, store: TreeStore):
        store.add_node(make_node("r1", name="Question 1"))
        store.add_node(make_node("c1", "r1", name="Question 1.1"))
        store.add_node(make_node("c2", "r1", name="Question 1.2"))
        store.delete_node("c1")
        assert store.generate_node_name("r1") == "Question 1.3"

    def test_unknown_parent_falls_back_to_root_rule(self, store: TreeStore):
        assert store.generate_node_name("missing") == "Question 1"


class TestLifecycle:
    def test_clear_all(self):
        store = build_branching_store()
        store.clear_all()
        assert len(store) == 0
        assert store.tree.root_ids == []

    def test_load_tree_replaces_state(self, store: TreeStore):
        source = build_branching_store()
        store.add_node(make_node("old"))
        store.load_tree(source.tree)
        assert "old" not in store
        assert set(store.tree.nodes) == set(source.tree.nodes)
        assert_tree_consistent(store)

    def test_load_tree_rejects_inconsistent_tree_and_keeps_state(self, store: TreeStore):
        store.add_node(make_node("keep"))
        bad = ConversationTree(
            nodes={"x": make_node("x", "ghost")},
            root_ids=[],
        )
        with pytest.raises(SchemaError):
            store.load_tree(bad)
        assert list(store.tree.nodes) == ["keep"]

    def test_stats(self, store: TreeStore):
        store.add_node(make_node("n1", tokens=100, cost=0.5))
        store.add_node(make_node("n2", "n1", tokens=50))
        stats = store.stats()
        assert stats.total_nodes == 2
        assert stats.total_roots == 1
        assert stats.total_tokens == 150
        assert stats.total_cost == pytest.approx(0.5)


class TestCheckIntegrity:
    def test_sound_tree(self):
        assert check_integrity(build_branching_store().tree) == []

    def test_detects_cycle(self):
        tree = ConversationTree(
            nodes={
                "a": ConversationNode(id="a", parent_id="b", children_ids=["b"]),
                "b": ConversationNode(id="b", parent_id="a", children_ids=["a"]),
            },
            root_ids=[],
        )
        assert any("Cycle" in p for p in check_integrity(tree))

    def test_detects_dangling_child(self):
        tree = ConversationTree(
            nodes={"a": ConversationNode(id="a", children_ids=["ghost"])},
            root_ids=["a"],
        )
        assert any("missing child" in p for p in check_integrity(tree))

    def test_detects_stale_root_ids(self):
        tree = ConversationTree(nodes={"a": ConversationNode(id="a")}, root_ids=[])
        assert check_integrity(tree)


class TestInvariantsUnderMutation:
    def test_random_mutation_sequence_keeps_invariants(self):
        """Deterministic pseudo-random add/delete mix; invariants hold after each step."""
        rng = random.Random(1234)
        store = TreeStore()
        counter = 0
        for _ in range(300):
            ids = list(store.tree.nodes)
            if ids and rng.random() < 0.25:
                store.delete_node(rng.choice(ids))
            else:
                parent = rng.choice(ids + [None]) if ids else None
                counter += 1
                store.add_node(make_node(f"n{counter}", parent))
            assert_tree_consistent(store)
            assert check_integrity(store.tree) == []
