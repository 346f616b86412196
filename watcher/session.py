"""
설정 세션과 Watch Loop

ConfigSession은 트리, 렌더러, 리로더를 소유하는 명시적 컨텍스트 객체입니다.
WatchLoop는 큐에서 변경 이벤트를 하나씩 꺼내 트리 수정 → 사이클을 순차 실행합니다.

처리 흐름 (이벤트 1건):
1. 키 정규화 (watch 루트 제거, 세그먼트 분할)
2. 트리 제자리 수정
3. [CHANGE] 로그
4. 렌더 → 리로드 (완료될 때까지 다음 이벤트를 읽지 않음)
"""

import asyncio
import logging

from configd.client import STREAM_CLOSED
from configd.cycle import CycleResult, run_cycle
from configd.path_utils import join_segments, key_segments
from configd.reloaders import Reloader
from configd.renderers import Renderer
from configd.tree import ConfigTree, build_tree, update_tree
from configd.types import ChangeEvent, EtcdNode

logger = logging.getLogger(__name__)


class ConfigSession:
    """watch 루트 하나에 대한 동기화 상태

    트리는 이 세션을 소유한 태스크에서만 읽고 씁니다.
    """

    def __init__(
        self,
        root: str,
        renderer: Renderer,
        reloader: Reloader,
        tree: ConfigTree | None = None,
    ):
        """
        Args:
            root: watch 루트 (예: /rails/production)
            renderer: 렌더러
            reloader: 리로더
            tree: 초기 트리 (None이면 빈 트리)
        """
        self.root = root
        self.renderer = renderer
        self.reloader = reloader
        self.tree = tree if tree is not None else ConfigTree()

        self.events_applied = 0
        self.cycles = 0
        self.last_event: ChangeEvent | None = None
        self.last_result: CycleResult | None = None

    def bootstrap(self, snapshot: EtcdNode) -> CycleResult:
        """스냅샷으로 트리 생성 후 첫 사이클 실행"""
        build_tree(snapshot, self.root, self.tree)
        leaf_count = sum(1 for _ in self.tree.leaves())
        logger.info(
            f"[Session] 초기 트리 생성 완료: {self.root}, "
            f"최상위 키 {len(self.tree.root.children)}개, 값 {leaf_count}개"
        )
        return self.cycle()

    def apply(self, event: ChangeEvent) -> list[str]:
        """이벤트 1건을 트리에 적용

        Returns:
            list[str]: 정규화된 주소
        """
        segments = key_segments(event.key, self.root)
        update_tree(self.tree, segments, event.value, event.action, is_dir=event.dir)
        self.events_applied += 1
        self.last_event = event
        return segments

    def cycle(self) -> CycleResult:
        result = run_cycle(self.tree, self.renderer, self.reloader)
        self.cycles += 1
        self.last_result = result
        return result


class WatchLoop:
    """이벤트 소비 루프

    STREAM_CLOSED(None)를 받으면 종료합니다.
    """

    def __init__(self, session: ConfigSession):
        self.session = session

    def handle(self, event: ChangeEvent) -> CycleResult:
        segments = self.session.apply(event)
        logger.info(
            f"[CHANGE]: {event.action.value} {join_segments(segments)} {event.value or ''}".rstrip()
        )
        return self.session.cycle()

    async def run(self, queue: "asyncio.Queue[ChangeEvent | None]") -> int:
        """스트림이 닫힐 때까지 이벤트 처리

        이벤트 하나의 처리 실패는 로그만 남기고 다음 이벤트로 진행합니다.

        Returns:
            int: 처리한 이벤트 수
        """
        processed = 0

        while True:
            event = await queue.get()
            if event is STREAM_CLOSED:
                break

            try:
                self.handle(event)
            except Exception as e:
                logger.error(
                    f"[Watcher] 이벤트 처리 실패: {event.action.value} {event.key}: {e}",
                    exc_info=True,
                )
            processed += 1

        logger.info(f"[Watcher] 이벤트 스트림 종료 (처리 {processed}건)")
        return processed
