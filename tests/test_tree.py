"""Tests for the immutable tree operations."""

import pytest

from tagtree import tree as treeops
from tagtree.types import AnalysisResult, FileNode, FolderNode, TagSet

from conftest import make_image, make_text


def _ids(tree):
    return [node.id for _, node in treeops.iter_nodes(tree)]


class TestFind:

    def test_finds_top_level_and_nested(self, mixed_tree):
        assert treeops.find(mixed_tree, "t2").name == "readme.txt"
        assert treeops.find(mixed_tree, "i1").name == "a.png"
        assert isinstance(treeops.find(mixed_tree, "n"), FolderNode)

    def test_every_id_is_found(self, mixed_tree):
        for node_id in _ids(mixed_tree):
            assert treeops.find(mixed_tree, node_id).id == node_id

    def test_absent_returns_none(self, mixed_tree):
        assert treeops.find(mixed_tree, "nope") is None
        assert treeops.find((), "x") is None


class TestUpdate:

    def test_transforms_nested_node(self, mixed_tree):
        new = treeops.update(mixed_tree, "i1", lambda n: treeops.rename(n, "z.png"))
        assert treeops.find(new, "i1").name == "z.png"
        # Input is untouched
        assert treeops.find(mixed_tree, "i1").name == "a.png"

    def test_shares_untouched_subtrees(self, mixed_tree):
        new = treeops.update(mixed_tree, "i2", lambda n: treeops.rename(n, "x.png"))
        assert new[0] is mixed_tree[0]
        assert new[2] is mixed_tree[2]
        assert new[1] is not mixed_tree[1]

    def test_absent_id_returns_same_tree(self, mixed_tree):
        new = treeops.update(mixed_tree, "missing", lambda n: treeops.rename(n, "x"))
        assert new is mixed_tree
        assert new == mixed_tree

    def test_identity_transform_returns_same_tree(self, mixed_tree):
        assert treeops.update(mixed_tree, "i1", lambda n: n) is mixed_tree

    def test_folder_rename_keeps_children(self, mixed_tree):
        new = treeops.update(mixed_tree, "d", lambda n: treeops.rename(n, "papers"))
        folder = treeops.find(new, "d")
        assert folder.name == "papers"
        assert folder.children is mixed_tree[0].children


class TestRemove:

    def test_remove_folder_removes_subtree(self):
        tree = (
            make_text("before"),
            FolderNode(
                id="f",
                name="folder",
                path="/folder",
                children=(make_text("f1"), make_text("f2")),
            ),
            make_text("after"),
        )
        new = treeops.remove(tree, "f")
        assert _ids(new) == ["before", "after"]
        for gone in ("f", "f1", "f2"):
            assert treeops.find(new, gone) is None
        assert new[0] is tree[0]
        assert new[1] is tree[2]

    def test_remove_preserves_order_of_others(self, mixed_tree):
        for node_id in _ids(mixed_tree):
            new = treeops.remove(mixed_tree, node_id)
            assert treeops.find(new, node_id) is None
            survivors = [i for i in _ids(mixed_tree) if treeops.find(new, i) is not None]
            assert _ids(new) == survivors

    def test_remove_nested_file(self, mixed_tree):
        new = treeops.remove(mixed_tree, "i1")
        assert treeops.find(new, "n").children == ()
        assert treeops.find(new, "t1") is not None

    def test_absent_returns_same_tree(self, mixed_tree):
        assert treeops.remove(mixed_tree, "missing") is mixed_tree


class TestCollect:

    def test_images_in_preorder(self, mixed_tree):
        images = list(treeops.collect(mixed_tree, lambda n: n.is_image))
        assert [n.id for n in images] == ["i1", "i2", "i3"]

    def test_only_files_are_yielded(self, mixed_tree):
        everything = list(treeops.collect(mixed_tree, lambda n: True))
        assert all(isinstance(n, FileNode) for n in everything)
        assert len(everything) == 5

    def test_is_lazy(self, mixed_tree):
        gen = treeops.collect(mixed_tree, lambda n: True)
        assert next(gen).id == "t1"


class TestInsertAtRoot:

    def test_appends(self, mixed_tree):
        node = make_text("new")
        new = treeops.insert_at_root(mixed_tree, node)
        assert new[-1] is node
        assert new[:-1] == mixed_tree


class TestTagTransforms:

    def test_add_tag_creates_shell(self):
        node = treeops.add_tag(make_image("x"), "cat")
        assert node.analysis.tags == ["cat"]
        assert node.analysis.document_type == "Unknown"
        assert node.analysis.summary == ""

    def test_add_tag_twice_has_no_duplicates(self):
        once = treeops.add_tag(make_image("x"), "cat")
        twice = treeops.add_tag(once, "cat")
        assert twice is once
        assert twice.tags == ["cat"]

    def test_add_tag_keeps_order(self):
        node = make_image("x", tags=["a"])
        node = treeops.add_tag(treeops.add_tag(node, "b"), "c")
        assert node.tags.to_list() == ["a", "b", "c"]

    def test_add_tag_ignores_folders(self, mixed_tree):
        folder = mixed_tree[0]
        assert treeops.add_tag(folder, "x") is folder

    def test_remove_tag(self):
        node = make_image("x", tags=["a", "b"])
        assert treeops.remove_tag(node, "a").tags == ["b"]
        assert treeops.remove_tag(node, "zzz") is node
        bare = make_image("y")
        assert treeops.remove_tag(bare, "a") is bare

    def test_attach_analysis(self):
        result = AnalysisResult("s", "n.png", TagSet(["t"]), "Image")
        assert treeops.attach_analysis(make_image("x"), result).analysis is result


class TestAddTagToMany:

    def test_tags_all_targets(self, mixed_tree):
        new = treeops.add_tag_to_many(mixed_tree, ["i1", "i3"], "cat")
        assert treeops.find(new, "i1").tags == ["cat"]
        assert treeops.find(new, "i3").tags == ["cat"]
        assert treeops.find(new, "i2").analysis is None
        assert new[1] is mixed_tree[1]

    def test_empty_targets_returns_same_tree(self, mixed_tree):
        assert treeops.add_tag_to_many(mixed_tree, [], "cat") is mixed_tree

    def test_already_tagged_unchanged(self):
        tree = (make_image("a", tags=["cat"]),)
        assert treeops.add_tag_to_many(tree, ["a"], "cat") is tree


class TestSeed:

    def test_seed_shape(self):
        tree = treeops.seed_tree()
        assert [n.name for n in tree] == ["Documents", "Images"]
        report = treeops.find(tree, "2")
        assert report.name == "report.txt"
        assert report.mime_type == "text/plain"
        assert "Project Alpha" in report.content
        assert treeops.find(tree, "3").children == ()

    def test_seed_is_fresh_each_call(self):
        assert treeops.seed_tree() == treeops.seed_tree()

    def test_iter_nodes_depths(self):
        depths = [(d, n.id) for d, n in treeops.iter_nodes(treeops.seed_tree())]
        assert depths == [(0, "1"), (1, "2"), (0, "3")]


@pytest.mark.parametrize("node_id", ["A", "B"])
def test_is_image_file(image_tree, node_id):
    assert treeops.is_image_file(treeops.find(image_tree, node_id))
    assert not treeops.is_image_file(image_tree[0])
