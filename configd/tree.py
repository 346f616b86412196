"""
설정 트리 동기화 엔진

etcd의 평면 키 경로(/rails/production/database/host)와
중첩 트리(database → host) 사이의 매핑을 담당합니다.

구성:
- Leaf / Directory: 트리 노드 (값 또는 하위 노드 매핑, 둘 중 하나만)
- build_tree(): 시작 시 1회, 재귀 스냅샷으로 트리 생성
- update_tree(): 이후 변경 이벤트마다 트리를 제자리에서 수정 (재생성 없음)

사용법:
    ```python
    tree = build_tree(snapshot.node, "/rails/production")
    update_tree(tree, ["database", "port"], "5432", ChangeAction.SET)
    tree.to_dict()  # {"database": {"host": "db1", "port": "5432"}}
    ```
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from .errors import TreeUpdateError
from .path_utils import join_segments, key_segments
from .types import ChangeAction, EtcdNode

logger = logging.getLogger(__name__)


@dataclass
class Leaf:
    """값 노드"""

    value: str


@dataclass
class Directory:
    """디렉토리 노드"""

    children: dict[str, "Node"] = field(default_factory=dict)


Node = Leaf | Directory


class ConfigTree:
    """watch 루트를 미러링하는 메모리 트리

    루트는 항상 Directory이며 watch 루트 디렉토리에 대응합니다.
    Watch Loop 태스크만 수정하므로 잠금이 없습니다.
    """

    def __init__(self, root: Directory | None = None):
        self.root = root if root is not None else Directory()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigTree":
        """중첩 dict로 트리 생성 (dict는 디렉토리, 나머지는 문자열 값)"""
        return cls(_directory_from_dict(data))

    def get(self, segments: list[str]) -> Node | None:
        """주소의 노드 조회 (없으면 None)"""
        node: Node = self.root
        for segment in segments:
            if not isinstance(node, Directory):
                return None
            child = node.children.get(segment)
            if child is None:
                return None
            node = child
        return node

    def exists(self, segments: list[str]) -> bool:
        return self.get(segments) is not None

    def leaves(self) -> Iterator[tuple[tuple[str, ...], str]]:
        """모든 (주소, 값) 쌍 순회"""
        yield from _iter_leaves(self.root, ())

    def clear(self) -> None:
        self.root.children.clear()

    def to_dict(self) -> dict[str, Any]:
        """렌더러용 순수 dict/str 구조로 변환 (복사본)"""
        return _directory_to_dict(self.root)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConfigTree):
            return NotImplemented
        return self.root == other.root

    def __repr__(self) -> str:
        return f"ConfigTree({self.to_dict()!r})"


def _directory_from_dict(data: dict[str, Any]) -> Directory:
    directory = Directory()
    for name, value in data.items():
        if isinstance(value, dict):
            directory.children[name] = _directory_from_dict(value)
        else:
            directory.children[name] = Leaf(str(value))
    return directory


def _directory_to_dict(directory: Directory) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for name, child in directory.children.items():
        if isinstance(child, Directory):
            result[name] = _directory_to_dict(child)
        else:
            result[name] = child.value
    return result


def _iter_leaves(
    directory: Directory, prefix: tuple[str, ...]
) -> Iterator[tuple[tuple[str, ...], str]]:
    for name, child in directory.children.items():
        address = prefix + (name,)
        if isinstance(child, Directory):
            yield from _iter_leaves(child, address)
        else:
            yield address, child.value


def _find_directory(tree: ConfigTree, segments: list[str]) -> Directory | None:
    """세그먼트를 따라 내려가며 마지막 디렉토리 반환 (경로가 끊기면 None)"""
    node = tree.root
    for segment in segments:
        child = node.children.get(segment)
        if not isinstance(child, Directory):
            return None
        node = child
    return node


def ensure_directory(tree: ConfigTree, segments: list[str]) -> Directory:
    """주소까지의 디렉토리 체인을 보장

    없는 디렉토리는 생성하고 중간의 값 노드는 디렉토리로 교체합니다.
    기존 디렉토리는 유지합니다.
    """
    node = tree.root
    for depth, segment in enumerate(segments):
        child = node.children.get(segment)
        if isinstance(child, Directory):
            node = child
            continue

        if isinstance(child, Leaf):
            # etcd는 값 노드 아래에 키를 만들 수 없지만, 순서가 꼬인 경우 디렉토리로 교체
            logger.warning(
                f"[Tree] 값 노드를 디렉토리로 교체: "
                f"{join_segments(segments[: depth + 1])} (기존 값={child.value!r})"
            )

        directory = Directory()
        node.children[segment] = directory
        node = directory
    return node


def set_leaf(tree: ConfigTree, segments: list[str], value: str) -> None:
    """주소에 값 설정 (중간 디렉토리 자동 생성, 기존 노드 덮어쓰기)"""
    parent = ensure_directory(tree, segments[:-1])
    parent.children[segments[-1]] = Leaf(value)


def remove_node(tree: ConfigTree, segments: list[str]) -> bool:
    """주소의 노드 제거

    Returns:
        bool: 실제로 제거했으면 True, 경로가 없으면 False (no-op)
    """
    parent = _find_directory(tree, segments[:-1])
    if parent is None:
        return False
    return parent.children.pop(segments[-1], None) is not None


def build_tree(
    snapshot: EtcdNode, root: str, tree: ConfigTree | None = None
) -> ConfigTree:
    """재귀 스냅샷으로 트리 생성

    시작 시 1회 호출되며, 결과 트리는 이후 update_tree()로만 수정됩니다.

    Args:
        snapshot: watch 루트 디렉토리 노드 (recursive 조회 결과)
        root: watch 루트 경로
        tree: 채울 트리 (None이면 새로 생성)

    Returns:
        ConfigTree: 스냅샷의 모든 디렉토리/값을 반영한 트리
    """
    tree = tree if tree is not None else ConfigTree()
    _build_children(snapshot.nodes, root, tree)
    return tree


def _build_children(nodes: list[EtcdNode], root: str, tree: ConfigTree) -> None:
    for node in nodes:
        segments = key_segments(node.key, root)
        if node.dir:
            ensure_directory(tree, segments)
            _build_children(node.nodes, root, tree)
        elif segments:
            set_leaf(tree, segments, node.value or "")


def update_tree(
    tree: ConfigTree,
    segments: list[str],
    value: str | None,
    action: ChangeAction | str,
    is_dir: bool = False,
) -> None:
    """변경 이벤트 1건을 트리에 제자리 적용

    - set/create/update/compareAndSwap: 중간 디렉토리를 만들며 내려가 마지막 세그먼트에 값 설정
      (is_dir이면 빈 디렉토리 생성)
    - delete/expire/compareAndDelete: 마지막 세그먼트 제거, 중간 경로가 없으면 no-op
    - 빈 세그먼트(watch 루트 자신): 제거 시 트리 전체 비움, 쓰기는 무시

    Args:
        tree: 수정할 트리
        segments: 정규화된 주소 (path_utils.key_segments 결과)
        value: 새 값 (제거 action에서는 무시)
        action: etcd action
        is_dir: 이벤트 대상이 디렉토리 노드인지 여부

    Raises:
        TreeUpdateError: 트리를 바꾸지 않는 action (get 등)
    """
    try:
        action = ChangeAction(action)
    except ValueError as e:
        raise TreeUpdateError(f"알 수 없는 action: {action}") from e

    if action.is_write:
        if not segments:
            logger.warning(f"[Tree] watch 루트 자체에 대한 {action.value} 이벤트 무시")
            return
        if is_dir:
            ensure_directory(tree, segments)
        else:
            set_leaf(tree, segments, value or "")
        return

    if action.is_removal:
        if not segments:
            logger.warning("[Tree] watch 루트 디렉토리 제거됨, 트리 초기화")
            tree.clear()
            return
        if not remove_node(tree, segments):
            logger.debug(f"[Tree] 제거 대상 없음 (no-op): {join_segments(segments)}")
        return

    raise TreeUpdateError(f"트리에 적용할 수 없는 action: {action.value}")
