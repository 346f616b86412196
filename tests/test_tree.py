"""
설정 트리 동기화 엔진 테스트

스냅샷 빌드, 이벤트 단위 제자리 수정, 멱등성/수렴성 속성 테스트.
"""

import pytest

from configd.errors import TreeUpdateError
from configd.path_utils import key_segments
from configd.tree import (
    ConfigTree,
    Directory,
    Leaf,
    build_tree,
    ensure_directory,
    remove_node,
    update_tree,
)
from configd.types import ChangeAction, EtcdNode, EtcdResponse
from tests.sample_data import ROOT, SNAPSHOT_TREE, node_from_pairs


class TestConfigTree:
    """ConfigTree 기본 동작 테스트"""

    def test_from_dict_to_dict(self):
        """dict 변환 왕복"""
        data = {"database": {"host": "db1"}, "name": "app", "empty": {}}
        tree = ConfigTree.from_dict(data)

        assert tree.to_dict() == data
        assert isinstance(tree.get(["database"]), Directory)
        assert tree.get(["database", "host"]) == Leaf("db1")

    def test_get_missing(self):
        tree = ConfigTree.from_dict({"a": "1"})

        assert tree.get(["b"]) is None
        assert tree.get(["a", "b"]) is None  # 값 노드 아래는 없음
        assert not tree.exists(["b"])

    def test_get_root(self):
        """빈 주소는 루트"""
        tree = ConfigTree()
        assert tree.get([]) is tree.root

    def test_to_dict_is_copy(self):
        """to_dict 결과를 수정해도 트리는 그대로"""
        tree = ConfigTree.from_dict({"a": {"b": "1"}})
        data = tree.to_dict()
        data["a"]["b"] = "2"

        assert tree.get(["a", "b"]) == Leaf("1")

    def test_equality(self):
        assert ConfigTree.from_dict({"a": {"b": "1"}}) == ConfigTree.from_dict({"a": {"b": "1"}})
        assert ConfigTree.from_dict({"a": {"b": "1"}}) != ConfigTree.from_dict({"a": {"b": "2"}})
        assert ConfigTree.from_dict({"a": {}}) != ConfigTree.from_dict({"a": ""})


class TestBuildTree:
    """build_tree 테스트"""

    def test_build_from_snapshot(self, snapshot_response: EtcdResponse, etcd_root: str):
        """스냅샷의 모든 디렉토리/값 반영"""
        tree = build_tree(snapshot_response.node, etcd_root)

        assert tree.to_dict() == SNAPSHOT_TREE

    def test_empty_directory_kept(self, snapshot_response: EtcdResponse, etcd_root: str):
        """빈 디렉토리도 디렉토리 노드로 생성"""
        tree = build_tree(snapshot_response.node, etcd_root)

        assert tree.get(["empty"]) == Directory()

    def test_build_empty_snapshot(self, etcd_root: str):
        tree = build_tree(EtcdNode(key=etcd_root, dir=True), etcd_root)

        assert tree.to_dict() == {}

    def test_build_into_existing_tree(self, etcd_root: str):
        """주어진 트리 객체를 채움"""
        tree = ConfigTree()
        result = build_tree(node_from_pairs(etcd_root, {"a/b": "1"}), etcd_root, tree)

        assert result is tree
        assert tree.to_dict() == {"a": {"b": "1"}}

    def test_leaf_without_value(self, etcd_root: str):
        """값이 생략된 노드는 빈 문자열"""
        snapshot = EtcdNode(
            key=etcd_root,
            dir=True,
            nodes=[EtcdNode(key=f"{etcd_root}/blank")],
        )
        tree = build_tree(snapshot, etcd_root)

        assert tree.get(["blank"]) == Leaf("")

    def test_snapshot_leaves_roundtrip(self, etcd_root: str):
        """스냅샷 → 트리 → 값 목록이 원래 (경로, 값) 집합과 동일"""
        pairs = {
            "database/host": "db1",
            "database/port": "5432",
            "database/replica/host": "db2",
            "redis/url": "redis://cache",
            "mailer/smtp/user/name": "app",
            "secret": "s3cr3t",
        }
        tree = build_tree(node_from_pairs(etcd_root, pairs), etcd_root)

        leaves = {"/".join(path): value for path, value in tree.leaves()}
        assert leaves == pairs


class TestUpdateTreeWrite:
    """set/create/update 이벤트 테스트"""

    @pytest.mark.parametrize(
        "action",
        [
            ChangeAction.SET,
            ChangeAction.CREATE,
            ChangeAction.UPDATE,
            ChangeAction.COMPARE_AND_SWAP,
        ],
    )
    def test_write_actions(self, action: ChangeAction):
        tree = ConfigTree()
        update_tree(tree, ["database", "host"], "db1", action)

        assert tree.to_dict() == {"database": {"host": "db1"}}

    def test_action_as_string(self):
        """etcd action 문자열 그대로 허용"""
        tree = ConfigTree()
        update_tree(tree, ["a"], "1", "set")

        assert tree.to_dict() == {"a": "1"}

    def test_creates_intermediate_directories(self):
        """중간 디렉토리가 없으면 생성 (a, a/b는 다른 자식 없는 디렉토리)"""
        tree = ConfigTree()
        update_tree(tree, ["a", "b", "c"], "v", ChangeAction.SET)

        assert tree.get(["a", "b", "c"]) == Leaf("v")
        assert isinstance(tree.get(["a"]), Directory)
        assert isinstance(tree.get(["a", "b"]), Directory)
        assert list(tree.get(["a"]).children) == ["b"]
        assert list(tree.get(["a", "b"]).children) == ["c"]

    def test_overwrite_leaf(self):
        tree = ConfigTree.from_dict({"a": "1"})
        update_tree(tree, ["a"], "2", ChangeAction.UPDATE)

        assert tree.to_dict() == {"a": "2"}

    def test_overwrite_directory_with_leaf(self):
        """마지막 세그먼트의 디렉토리는 값으로 덮어씀"""
        tree = ConfigTree.from_dict({"a": {"b": "1"}})
        update_tree(tree, ["a"], "flat", ChangeAction.SET)

        assert tree.to_dict() == {"a": "flat"}

    def test_intermediate_leaf_replaced_by_directory(self):
        """중간 세그먼트가 값이면 디렉토리로 교체"""
        tree = ConfigTree.from_dict({"a": "1", "z": "keep"})
        update_tree(tree, ["a", "b"], "2", ChangeAction.SET)

        assert tree.to_dict() == {"a": {"b": "2"}, "z": "keep"}

    def test_siblings_untouched(self):
        tree = ConfigTree.from_dict({"database": {"host": "db1"}})
        update_tree(tree, ["database", "port"], "5432", ChangeAction.SET)

        assert tree.to_dict() == {"database": {"host": "db1", "port": "5432"}}

    def test_none_value_becomes_empty_string(self):
        tree = ConfigTree()
        update_tree(tree, ["a"], None, ChangeAction.SET)

        assert tree.get(["a"]) == Leaf("")

    def test_directory_event_creates_empty_directory(self):
        """디렉토리 set 이벤트는 빈 디렉토리 생성"""
        tree = ConfigTree()
        update_tree(tree, ["cache", "store"], None, ChangeAction.SET, is_dir=True)

        assert tree.to_dict() == {"cache": {"store": {}}}

    def test_directory_event_keeps_existing_children(self):
        tree = ConfigTree.from_dict({"cache": {"ttl": "60"}})
        update_tree(tree, ["cache"], None, ChangeAction.UPDATE, is_dir=True)

        assert tree.to_dict() == {"cache": {"ttl": "60"}}

    def test_write_to_root_ignored(self):
        """watch 루트 자체에 대한 쓰기는 무시"""
        tree = ConfigTree.from_dict({"a": "1"})
        update_tree(tree, [], "x", ChangeAction.SET)

        assert tree.to_dict() == {"a": "1"}

    def test_set_is_idempotent(self):
        """같은 set을 두 번 적용해도 한 번과 동일"""
        once = ConfigTree.from_dict({"database": {"host": "db1"}})
        twice = ConfigTree.from_dict({"database": {"host": "db1"}})

        update_tree(once, ["database", "port"], "5432", ChangeAction.SET)
        update_tree(twice, ["database", "port"], "5432", ChangeAction.SET)
        update_tree(twice, ["database", "port"], "5432", ChangeAction.SET)

        assert once == twice

    def test_mutates_in_place(self):
        """트리 객체를 복사하지 않고 수정"""
        tree = ConfigTree()
        root = tree.root
        update_tree(tree, ["a"], "1", ChangeAction.SET)

        assert tree.root is root


class TestUpdateTreeRemove:
    """delete/expire 이벤트 테스트"""

    @pytest.mark.parametrize(
        "action",
        [ChangeAction.DELETE, ChangeAction.EXPIRE, ChangeAction.COMPARE_AND_DELETE],
    )
    def test_remove_actions(self, action: ChangeAction):
        tree = ConfigTree.from_dict({"database": {"host": "db1", "port": "5432"}})
        update_tree(tree, ["database", "host"], None, action)

        assert tree.to_dict() == {"database": {"port": "5432"}}

    def test_remove_directory(self):
        """디렉토리 삭제 시 하위 전체 제거"""
        tree = ConfigTree.from_dict({"database": {"host": "db1"}, "redis": {"url": "x"}})
        update_tree(tree, ["database"], None, ChangeAction.DELETE, is_dir=True)

        assert tree.to_dict() == {"redis": {"url": "x"}}

    def test_remove_single_segment(self):
        tree = ConfigTree.from_dict({"a": "1", "b": "2"})
        update_tree(tree, ["a"], None, ChangeAction.DELETE)

        assert tree.to_dict() == {"b": "2"}

    @pytest.mark.parametrize(
        "segments",
        [["missing"], ["database", "missing"], ["missing", "deep", "key"], ["database", "host", "x"]],
    )
    def test_remove_missing_is_noop(self, segments: list[str]):
        """없는 경로 삭제는 no-op"""
        tree = ConfigTree.from_dict({"database": {"host": "db1"}})
        before = ConfigTree.from_dict(tree.to_dict())

        update_tree(tree, segments, None, ChangeAction.DELETE)

        assert tree == before

    def test_remove_does_not_create_intermediates(self):
        tree = ConfigTree()
        update_tree(tree, ["a", "b"], None, ChangeAction.DELETE)

        assert not tree.exists(["a"])

    def test_remove_root_clears_tree(self):
        """watch 루트 삭제 시 트리 초기화"""
        tree = ConfigTree.from_dict({"a": "1", "b": {"c": "2"}})
        update_tree(tree, [], None, ChangeAction.DELETE, is_dir=True)

        assert tree.to_dict() == {}

    def test_delete_then_recreate(self):
        """삭제 후 같은 경로 재생성 시 새 값으로 복구"""
        tree = ConfigTree.from_dict({"database": {"host": "db1"}})
        update_tree(tree, ["database", "host"], None, ChangeAction.DELETE)
        assert not tree.exists(["database", "host"])

        update_tree(tree, ["database", "host"], "db2", ChangeAction.CREATE)

        assert tree.get(["database", "host"]) == Leaf("db2")

    def test_get_action_rejected(self):
        """트리를 바꾸지 않는 action은 에러"""
        with pytest.raises(TreeUpdateError, match="get"):
            update_tree(ConfigTree(), ["a"], "1", ChangeAction.GET)

    def test_unknown_action_rejected(self):
        with pytest.raises(TreeUpdateError, match="알 수 없는 action"):
            update_tree(ConfigTree(), ["a"], "1", "rename")


class TestTreeHelpers:
    """ensure_directory / remove_node 테스트"""

    def test_ensure_directory_returns_existing(self):
        tree = ConfigTree.from_dict({"a": {"b": {"c": "1"}}})

        directory = ensure_directory(tree, ["a", "b"])

        assert directory is tree.get(["a", "b"])
        assert tree.to_dict() == {"a": {"b": {"c": "1"}}}

    def test_ensure_directory_creates_chain(self):
        tree = ConfigTree()

        directory = ensure_directory(tree, ["a", "b"])

        assert isinstance(directory, Directory)
        assert tree.to_dict() == {"a": {"b": {}}}

    def test_ensure_directory_replaces_leaf(self):
        tree = ConfigTree.from_dict({"a": "1"})

        directory = ensure_directory(tree, ["a", "b"])

        assert directory.children == {}
        assert tree.to_dict() == {"a": {"b": {}}}

    def test_ensure_directory_root(self):
        tree = ConfigTree()

        assert ensure_directory(tree, []) is tree.root

    def test_remove_node(self):
        tree = ConfigTree.from_dict({"a": {"b": "1", "c": "2"}})

        assert remove_node(tree, ["a", "b"]) is True
        assert tree.to_dict() == {"a": {"c": "2"}}

    def test_remove_node_through_leaf(self):
        """중간이 값 노드면 제거 대상 없음"""
        tree = ConfigTree.from_dict({"a": "1"})

        assert remove_node(tree, ["a", "b"]) is False
        assert tree.to_dict() == {"a": "1"}


class TestConfluence:
    """증분 적용과 스냅샷 빌드의 수렴성 테스트"""

    def test_incremental_equals_snapshot(self):
        """이벤트를 하나씩 적용한 결과 == 같은 상태의 스냅샷 빌드 결과"""
        pairs = {
            "database/host": "db1",
            "database/port": "5432",
            "redis/url": "redis://cache",
            "a/b/c/d": "deep",
            "flag": "on",
        }

        incremental = ConfigTree()
        for path, value in pairs.items():
            segments = key_segments(f"{ROOT}/{path}", ROOT)
            update_tree(incremental, segments, value, ChangeAction.SET)

        built = build_tree(node_from_pairs(ROOT, pairs), ROOT)

        assert incremental == built

    def test_last_writer_wins(self):
        """같은 주소의 이벤트는 전달 순서대로 적용"""
        tree = ConfigTree()
        for value in ("1", "2", "3"):
            update_tree(tree, ["counter"], value, ChangeAction.SET)

        assert tree.get(["counter"]) == Leaf("3")


class TestDatabaseScenario:
    """/rails/production database 시나리오"""

    def test_scenario(self, etcd_root: str):
        snapshot = node_from_pairs(etcd_root, {"database/host": "db1"})
        tree = build_tree(snapshot, etcd_root)
        assert tree.get(["database", "host"]) == Leaf("db1")

        update_tree(
            tree,
            key_segments("/rails/production/database/port", etcd_root),
            "5432",
            ChangeAction.SET,
        )
        assert tree.get(["database", "port"]) == Leaf("5432")
        assert tree.get(["database", "host"]) == Leaf("db1")

        update_tree(
            tree,
            key_segments("/rails/production/database/host", etcd_root),
            None,
            ChangeAction.DELETE,
        )
        assert not tree.exists(["database", "host"])
        assert tree.get(["database", "port"]) == Leaf("5432")
