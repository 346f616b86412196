"""
rails-configd 공통 라이브러리

etcd 클라이언트, 설정 트리 동기화 엔진, 렌더러/리로더, 에러 처리 제공.
"""

from .client import STREAM_CLOSED, EtcdClient
from .cycle import CycleResult, run_cycle
from .errors import (
    NON_RETRYABLE_PATTERNS,
    RETRYABLE_PATTERNS,
    ConfigdError,
    ConfigurationError,
    ErrorCategory,
    ErrorClassifier,
    ReloadError,
    RenderError,
    StoreError,
    TreeUpdateError,
)
from .path_utils import join_segments, key_segments, naked_key, split_key
from .reloaders import (
    Reloader,
    ReloadSettings,
    available_reloaders,
    open_reloader,
    register_reloader,
)
from .renderers import (
    Renderer,
    RenderSettings,
    available_renderers,
    open_renderer,
    register_renderer,
)
from .tree import ConfigTree, Directory, Leaf, build_tree, update_tree
from .types import ChangeAction, ChangeEvent, EtcdNode, EtcdResponse, Snapshot

__all__ = [
    # Client
    "EtcdClient",
    "STREAM_CLOSED",
    # Cycle
    "CycleResult",
    "run_cycle",
    # Errors
    "ConfigdError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorClassifier",
    "ReloadError",
    "RenderError",
    "StoreError",
    "TreeUpdateError",
    "NON_RETRYABLE_PATTERNS",
    "RETRYABLE_PATTERNS",
    # Path Utils
    "join_segments",
    "key_segments",
    "naked_key",
    "split_key",
    # Reloaders
    "Reloader",
    "ReloadSettings",
    "available_reloaders",
    "open_reloader",
    "register_reloader",
    # Renderers
    "Renderer",
    "RenderSettings",
    "available_renderers",
    "open_renderer",
    "register_renderer",
    # Tree
    "ConfigTree",
    "Directory",
    "Leaf",
    "build_tree",
    "update_tree",
    # Types
    "ChangeAction",
    "ChangeEvent",
    "EtcdNode",
    "EtcdResponse",
    "Snapshot",
]
