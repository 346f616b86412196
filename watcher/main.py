"""
rails-configd 메인 엔트리포인트

etcd 디렉토리를 감시하여 Rails 설정 파일을 생성하고 Rails를 리로드합니다.

태스크 구성 (단일 이벤트 루프):
- 시그널 핸들러: SIGINT/SIGTERM → stop_event 설정
- watch 태스크: etcd long-poll → 이벤트 큐
- 메인: WatchLoop가 큐를 순차 소비 (트리 단독 소유)

사용법 (Rails 앱 디렉토리 안에서):
    rails-configd --etcd http://localhost:4001 --etcd-dir /rails/production \\
        --env production --renderer yaml --reloader touch
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path

from configd.client import EtcdClient
from configd.errors import ConfigurationError, ErrorCategory, StoreError
from configd.reloaders import available_reloaders, open_reloader
from configd.renderers import available_renderers, open_renderer
from configd.types import ChangeEvent, Snapshot

from .config import LOG_LEVELS, WatcherConfig
from .health import HealthServer
from .session import ConfigSession, WatchLoop

logger = logging.getLogger(__name__)


class ConfigDaemon:
    """etcd → Rails 설정 동기화 데몬

    렌더러/리로더는 생성 시점에 열어 잘못된 이름을 시작 단계에서 거부합니다.
    """

    def __init__(self, config: WatcherConfig):
        """
        Args:
            config: 데몬 설정

        Raises:
            ConfigurationError: 알 수 없는 renderer/reloader 또는 필수 옵션 누락
        """
        self.config = config

        renderer = open_renderer(config.renderer, config.render_settings())
        reloader = open_reloader(config.reloader, config.reload_settings())
        self.session = ConfigSession(config.etcd_dir, renderer, reloader)

        self.etcd = EtcdClient(
            config.endpoints,
            timeout=config.request_timeout,
            retry_delay=config.retry_delay,
            max_retry_delay=config.max_retry_delay,
        )
        self.queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self.stop_event = asyncio.Event()
        self.running = False
        self.health_server = HealthServer(self) if config.health_port else None

        logger.info(
            f"[Watcher] 초기화 완료: renderer={renderer.name}, reloader={reloader.name}"
        )

    async def bootstrap(self) -> Snapshot:
        """클러스터 동기화, 스냅샷 조회, 초기 트리 생성 및 첫 사이클

        Raises:
            StoreError: etcd 연결/조회 실패
            ConfigurationError: etcd-dir이 디렉토리가 아님
        """
        if not await self.etcd.sync_cluster():
            raise StoreError(
                "etcd 클러스터 동기화 실패, --etcd 주소를 확인하세요",
                ErrorCategory.NON_RETRYABLE,
            )

        snapshot = await self.etcd.get(self.config.etcd_dir, recursive=True)
        if not snapshot.node.dir:
            raise ConfigurationError(
                f"etcd-dir은 디렉토리여야 합니다: {self.config.etcd_dir}"
            )

        self.session.bootstrap(snapshot.node)
        return snapshot

    def request_stop(self) -> None:
        """종료 요청 (시그널 핸들러)"""
        if not self.stop_event.is_set():
            logger.info("[Watcher] 종료 신호 수신, 현재 사이클 완료 후 종료")
        self.stop_event.set()

    def _install_signal_handlers(self) -> None:
        # Windows는 asyncio signal handler를 지원하지 않으므로 signal.signal() 사용
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop)
        else:
            signal.signal(
                signal.SIGINT,
                lambda s, f: loop.call_soon_threadsafe(self.request_stop),
            )

    async def start(self) -> None:
        """데몬 시작 (종료 신호 또는 watch 중단까지 블록)

        Raises:
            StoreError: 시작 실패 또는 재시도 불가 에러로 watch 중단
            ConfigurationError: 시작 단계 설정 오류 (헬스 포트 사용 중 포함)
        """
        snapshot = await self.bootstrap()

        self._install_signal_handlers()
        if self.health_server:
            try:
                await self.health_server.start()
            except OSError as e:
                raise ConfigurationError(
                    f"헬스 서버 시작 실패 (port={self.config.health_port}): {e}"
                ) from e

        wait_index = snapshot.etcd_index + 1 if snapshot.etcd_index is not None else None
        logger.info(f"[Watcher] etcd 변경 대기 중 @ {self.config.etcd_dir}")

        self.running = True
        producer = asyncio.create_task(
            self.etcd.watch(self.config.etcd_dir, self.queue, self.stop_event, wait_index)
        )

        try:
            await WatchLoop(self.session).run(self.queue)
        finally:
            self.running = False
            self.stop_event.set()
            if self.health_server:
                await self.health_server.stop()

        # watch 태스크가 에러로 끝났으면 여기서 전파
        await producer
        logger.info("[Watcher] 종료 완료")


# ============================================================================
# 엔트리포인트
# ============================================================================


def setup_logging(level: str = "INFO") -> None:
    """로깅 설정"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_env_file(directory: Path | None = None) -> None:
    """현재 디렉토리의 .env 파일 로드 (있을 때만)"""
    from dotenv import load_dotenv

    env_path = (directory or Path.cwd()) / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """커맨드라인 파싱 (기본값은 환경변수)"""
    defaults = WatcherConfig.from_env()

    parser = argparse.ArgumentParser(
        prog="rails-configd",
        description=(
            "etcd 트리를 감시하여 Rails 설정 파일을 생성하고 Rails 프로세스를 리로드합니다."
        ),
    )
    parser.add_argument(
        "--etcd", default=defaults.etcd_url,
        help="etcd 주소 (쉼표로 여러 개 지정)",
    )
    parser.add_argument(
        "--etcd-dir", default=defaults.etcd_dir,
        help="설정이 들어 있는 etcd 디렉토리",
    )
    parser.add_argument(
        "--env", default=defaults.rails_env,
        help="설정할 Rails 환경",
    )
    parser.add_argument(
        "--renderer", default=defaults.renderer,
        help=f"설정 파일 렌더러 ({', '.join(available_renderers())})",
    )
    parser.add_argument(
        "--reloader", default=defaults.reloader,
        help=f"Rails 리로드 방식 ({', '.join(available_reloaders())})",
    )
    parser.add_argument(
        "--output-dir", default=defaults.output_dir,
        help="렌더링 결과 디렉토리",
    )
    parser.add_argument(
        "--touch-file", default=defaults.touch_file,
        help="touch reloader 대상 파일",
    )
    parser.add_argument(
        "--pid-file", default=defaults.pid_file,
        help="signal reloader가 읽을 pid 파일",
    )
    parser.add_argument(
        "--reload-signal", default=defaults.reload_signal,
        help="signal reloader가 보낼 시그널",
    )
    parser.add_argument(
        "--reload-command", default=defaults.reload_command,
        help="command reloader가 실행할 셸 명령",
    )
    parser.add_argument(
        "--health-port", type=int, default=defaults.health_port,
        help="헬스체크 HTTP 포트 (0이면 비활성)",
    )
    parser.add_argument(
        "--log-level", default=defaults.log_level,
        choices=[*LOG_LEVELS, *(level.lower() for level in LOG_LEVELS)],
        help="로그 레벨",
    )
    args = parser.parse_args(argv)
    args.defaults = defaults
    return args


def config_from_args(args: argparse.Namespace) -> WatcherConfig:
    """파싱 결과를 환경변수 기반 설정 위에 덮어쓰기"""
    base = getattr(args, "defaults", None) or WatcherConfig.from_env()
    return replace(
        base,
        etcd_url=args.etcd,
        etcd_dir=args.etcd_dir,
        rails_env=args.env,
        renderer=args.renderer,
        reloader=args.reloader,
        output_dir=args.output_dir,
        touch_file=args.touch_file,
        pid_file=args.pid_file,
        reload_signal=args.reload_signal,
        reload_command=args.reload_command,
        health_port=args.health_port,
        log_level=args.log_level.upper(),
    )


def run(argv: list[str] | None = None) -> int:
    """데몬 실행

    Returns:
        int: 종료 코드 (0 정상, 1 치명적 오류)
    """
    load_env_file()
    config = config_from_args(parse_args(argv))
    setup_logging(config.log_level)

    logger.info("=" * 60)
    logger.info("rails-configd")
    logger.info("=" * 60)
    logger.info(f"etcd: {config.etcd_url}")
    logger.info(f"etcd dir: {config.etcd_dir}")
    logger.info(f"Rails env: {config.rails_env}")

    try:
        config.validate(strict=True)
        daemon = ConfigDaemon(config)
        asyncio.run(daemon.start())
    except (ConfigurationError, StoreError) as e:
        logger.error(f"[Watcher] 치명적 오류로 종료: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("[Watcher] KeyboardInterrupt 수신, 종료 중...")

    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
