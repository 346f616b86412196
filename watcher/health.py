"""
헬스체크 HTTP 서버

데몬 상태 모니터링을 위한 간단한 HTTP 서버.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from .main import ConfigDaemon

logger = logging.getLogger(__name__)


class HealthServer:
    """헬스체크 HTTP 서버

    aiohttp를 사용하여 동기화 상태를 노출합니다.
    """

    def __init__(self, daemon: "ConfigDaemon"):
        """
        Args:
            daemon: ConfigDaemon 인스턴스 (상태 참조용)
        """
        self.daemon = daemon
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self.started_at = datetime.now(timezone.utc)

        self.app.router.add_get("/health", self._health_handler)

    async def _health_handler(self, request: web.Request) -> web.Response:
        """GET /health 엔드포인트 핸들러

        Returns:
            JSON 응답:
                {
                    "status": "ok" | "degraded",
                    "etcd_dir": "/rails/production",
                    "running": true,
                    "events_applied": 12,
                    "cycles": 13,
                    "last_cycle": {"rendered": true, "reloaded": true, "error": null, ...},
                    "uptime_seconds": 1234
                }
        """
        session = self.daemon.session
        uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()

        last = session.last_result
        last_cycle = None
        if last is not None:
            last_cycle = {
                "rendered": last.rendered,
                "reloaded": last.reloaded,
                "error": last.error,
                "artifacts": [str(path) for path in last.artifacts],
            }

        return web.json_response(
            {
                "status": "ok" if last is None or last.ok else "degraded",
                "etcd_dir": session.root,
                "running": self.daemon.running,
                "events_applied": session.events_applied,
                "cycles": session.cycles,
                "last_cycle": last_cycle,
                "uptime_seconds": int(uptime),
            }
        )

    async def start(self) -> None:
        """헬스 서버 시작"""
        port = self.daemon.config.health_port

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, "0.0.0.0", port)
        await self.site.start()

        logger.info(f"[Health] 헬스 서버 시작: http://0.0.0.0:{port}/health")

    async def stop(self) -> None:
        """헬스 서버 종료"""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("[Health] 헬스 서버 종료 완료")
