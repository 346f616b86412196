"""
Pytest 설정 및 공통 Fixture
"""

from pathlib import Path
from typing import Any

import pytest

from configd.errors import ReloadError, RenderError
from configd.reloaders import Reloader
from configd.renderers import Renderer
from configd.tree import ConfigTree
from configd.types import EtcdResponse
from watcher.config import WatcherConfig
from tests.sample_data import ROOT, SNAPSHOT_RESPONSE


class RecordingRenderer(Renderer):
    """렌더링 시점의 트리를 기록하는 테스트용 렌더러"""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.renders: list[dict[str, Any]] = []

    def render(self, tree: ConfigTree) -> list[Path]:
        if self.fail:
            raise RenderError("디스크 가득 참")
        self.renders.append(tree.to_dict())
        return [Path("config/recorded.yml")]


class RecordingReloader(Reloader):
    """호출 횟수를 기록하는 테스트용 리로더"""

    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def reload(self) -> None:
        self.calls += 1
        if self.fail:
            raise ReloadError("pid 파일 없음")


@pytest.fixture
def etcd_root() -> str:
    """테스트용 watch 루트"""
    return ROOT


@pytest.fixture
def snapshot_response() -> EtcdResponse:
    """샘플 스냅샷 응답"""
    return EtcdResponse.model_validate(SNAPSHOT_RESPONSE)


@pytest.fixture
def recording_renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def recording_reloader() -> RecordingReloader:
    return RecordingReloader()


@pytest.fixture
def watcher_config(tmp_path: Path) -> WatcherConfig:
    """테스트용 WatcherConfig

    환경변수 대신 하드코딩된 값 사용.
    """
    return WatcherConfig(
        etcd_url="http://etcd1:2379,http://etcd2:2379",
        etcd_dir=ROOT,
        rails_env="production",
        renderer="yaml",
        reloader="touch",
        output_dir=str(tmp_path / "config"),
        touch_file=str(tmp_path / "tmp" / "restart.txt"),
        retry_delay=0.01,
        max_retry_delay=0.05,
        health_port=0,
    )
