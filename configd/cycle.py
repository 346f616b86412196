"""
렌더 → 리로드 사이클

트리가 바뀔 때마다(최초 빌드 포함) 호출됩니다.
렌더링이 실패하면 리로드하지 않고, 리로드가 실패해도 작성된 파일은 그대로 둡니다.
두 경우 모두 로그만 남기고 다음 이벤트에서 자연 복구됩니다 (재시도 없음).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ReloadError, RenderError
from .reloaders import Reloader
from .renderers import Renderer
from .tree import ConfigTree

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """사이클 결과"""

    rendered: bool = False
    reloaded: bool = False
    artifacts: list[Path] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.rendered and self.reloaded


def run_cycle(tree: ConfigTree, renderer: Renderer, reloader: Reloader) -> CycleResult:
    """렌더링 후 리로드

    Args:
        tree: 현재 트리 (렌더링이 끝날 때까지 수정되지 않음)
        renderer: 렌더러
        reloader: 리로더

    Returns:
        CycleResult: 단계별 성공 여부
    """
    result = CycleResult()

    try:
        result.artifacts = renderer.render(tree)
        result.rendered = True
    except RenderError as e:
        result.error = str(e)
        logger.error(f"[Cycle] 렌더링 실패, 리로드 생략: {e}")
        return result

    try:
        reloader.reload()
        result.reloaded = True
    except ReloadError as e:
        result.error = str(e)
        logger.error(f"[Cycle] 리로드 실패 (렌더링 결과 유지): {e}")
        return result

    logger.info(
        f"[Cycle] 완료: renderer={renderer.name}, reloader={reloader.name}, "
        f"files={len(result.artifacts)}"
    )
    return result
