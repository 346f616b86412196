"""
데몬 설정

환경변수 기반 기본값 + 커맨드라인 덮어쓰기 (main.parse_args).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from configd.errors import ConfigurationError
from configd.reloaders import ReloadSettings
from configd.renderers import RenderSettings

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class WatcherConfig:
    """rails-configd 설정"""

    # etcd
    etcd_url: str = "http://localhost:4001"  # 쉼표로 여러 엔드포인트 지정 가능
    etcd_dir: str = "/rails/production"
    request_timeout: float = 5.0
    retry_delay: float = 1.0  # watch 재시도 초기 대기 (초)
    max_retry_delay: float = 30.0

    # Rails
    rails_env: str = "production"

    # 렌더러
    renderer: str = "yaml"
    output_dir: str = "config"

    # 리로더
    reloader: str = "touch"
    touch_file: str = "tmp/restart.txt"
    pid_file: str = ""
    reload_signal: str = "HUP"
    reload_command: str = ""
    command_timeout: float = 60.0

    # 헬스 서버 (0이면 비활성)
    health_port: int = 0

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """환경변수에서 설정 로드"""
        return cls(
            etcd_url=os.getenv("ETCD_URL", "http://localhost:4001"),
            etcd_dir=os.getenv("ETCD_DIR", "/rails/production"),
            request_timeout=float(os.getenv("ETCD_TIMEOUT", "5")),
            retry_delay=float(os.getenv("ETCD_RETRY_DELAY", "1")),
            max_retry_delay=float(os.getenv("ETCD_MAX_RETRY_DELAY", "30")),
            rails_env=os.getenv("RAILS_ENV", "production"),
            renderer=os.getenv("CONFIGD_RENDERER", "yaml"),
            output_dir=os.getenv("CONFIGD_OUTPUT_DIR", "config"),
            reloader=os.getenv("CONFIGD_RELOADER", "touch"),
            touch_file=os.getenv("CONFIGD_TOUCH_FILE", "tmp/restart.txt"),
            pid_file=os.getenv("CONFIGD_PID_FILE", ""),
            reload_signal=os.getenv("CONFIGD_RELOAD_SIGNAL", "HUP"),
            reload_command=os.getenv("CONFIGD_RELOAD_COMMAND", ""),
            command_timeout=float(os.getenv("CONFIGD_COMMAND_TIMEOUT", "60")),
            health_port=int(os.getenv("HEALTH_PORT", "0")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def endpoints(self) -> list[str]:
        return [url.strip() for url in self.etcd_url.split(",") if url.strip()]

    def render_settings(self) -> RenderSettings:
        return RenderSettings(output_dir=self.output_dir, environment=self.rails_env)

    def reload_settings(self) -> ReloadSettings:
        return ReloadSettings(
            touch_file=self.touch_file,
            pid_file=self.pid_file,
            signal_name=self.reload_signal,
            command=self.reload_command,
            command_timeout=self.command_timeout,
        )

    def validate(self, strict: bool = True) -> list[str]:
        """설정값 검증

        Args:
            strict: True면 오류 시 예외 발생, False면 로그만

        Returns:
            list[str]: 검증 경고/오류 메시지 목록

        Raises:
            ConfigurationError: strict=True이고 오류가 있을 때
        """
        errors = []
        warnings = []

        # etcd 엔드포인트
        if not self.endpoints:
            errors.append("etcd 엔드포인트 누락: --etcd / ETCD_URL")
        for url in self.endpoints:
            if not url.startswith(("http://", "https://")):
                errors.append(f"잘못된 etcd 주소 형식: {url}")

        if not self.etcd_dir.startswith("/"):
            errors.append(f"etcd 디렉토리는 /로 시작해야 함: {self.etcd_dir}")

        if not self.rails_env:
            errors.append("Rails 환경 이름 누락: --env / RAILS_ENV")

        # 숫자값 범위 검증
        if self.request_timeout <= 0:
            errors.append(f"잘못된 요청 타임아웃: {self.request_timeout}")
        if self.retry_delay <= 0 or self.max_retry_delay < self.retry_delay:
            errors.append(
                f"잘못된 재시도 간격: {self.retry_delay} ~ {self.max_retry_delay}"
            )
        if not 0 <= self.health_port <= 65535:
            errors.append(f"잘못된 헬스 포트: {self.health_port}")

        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"알 수 없는 로그 레벨: {self.log_level}")

        # 경로 검증 (경고만, 렌더링 시 생성)
        if self.output_dir and not Path(self.output_dir).exists():
            warnings.append(f"출력 디렉토리 없음 (자동 생성): {self.output_dir}")

        for warning in warnings:
            logger.warning(f"[Config] {warning}")

        if errors:
            for error in errors:
                logger.error(f"[Config] {error}")
            if strict:
                raise ConfigurationError(
                    f"설정 검증 실패: {len(errors)}개 오류\n" + "\n".join(errors)
                )

        return errors + warnings

    @classmethod
    def from_env_validated(cls, strict: bool = True) -> "WatcherConfig":
        """환경변수에서 설정 로드 및 검증"""
        config = cls.from_env()
        config.validate(strict=strict)
        return config
