"""
Rails 리로드 전략

렌더링이 끝난 뒤 실행 중인 Rails 프로세스에 변경을 알립니다.
트리에는 접근하지 않습니다.

- touch: tmp/restart.txt 타임스탬프 갱신 (Passenger)
- signal: pid 파일의 프로세스에 시그널 전송 (Unicorn/Puma)
- command: 임의 셸 명령 실행
- none: 아무것도 하지 않음
"""

import logging
import os
import signal
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .errors import ConfigurationError, ReloadError

logger = logging.getLogger(__name__)


@dataclass
class ReloadSettings:
    """리로더 공통 설정"""

    touch_file: str = "tmp/restart.txt"
    pid_file: str = ""
    signal_name: str = "HUP"
    command: str = ""
    command_timeout: float = 60.0


class Reloader(ABC):
    """리로더 인터페이스"""

    name = ""

    @abstractmethod
    def reload(self) -> None:
        """Rails 프로세스에 리로드 요청

        Raises:
            ReloadError: 리로드 실패
        """


_RELOADERS: dict[str, type[Reloader]] = {}


def register_reloader(name: str) -> Callable[[type[Reloader]], type[Reloader]]:
    """리로더 클래스를 이름으로 등록하는 데코레이터"""

    def decorator(cls: type[Reloader]) -> type[Reloader]:
        cls.name = name
        _RELOADERS[name] = cls
        return cls

    return decorator


def available_reloaders() -> list[str]:
    return sorted(_RELOADERS)


def open_reloader(name: str, settings: ReloadSettings | None = None) -> Reloader:
    """이름으로 리로더 생성

    Raises:
        ConfigurationError: 등록되지 않은 이름 또는 필수 설정 누락
    """
    reloader_cls = _RELOADERS.get(name)
    if reloader_cls is None:
        raise ConfigurationError(
            f"알 수 없는 reloader: {name} (사용 가능: {', '.join(available_reloaders())})"
        )
    return reloader_cls(settings or ReloadSettings())


def resolve_signal(name: str) -> signal.Signals:
    """시그널 이름(HUP, SIGUSR2, 1 등) → signal.Signals

    Raises:
        ConfigurationError: 알 수 없는 시그널
    """
    normalized = name.strip().upper()
    try:
        if normalized.isdigit():
            return signal.Signals(int(normalized))
        if not normalized.startswith("SIG"):
            normalized = f"SIG{normalized}"
        return signal.Signals[normalized]
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"알 수 없는 시그널: {name}") from e


@register_reloader("touch")
class TouchReloader(Reloader):
    """파일 타임스탬프 갱신 (파일이 없으면 생성)"""

    def __init__(self, settings: ReloadSettings):
        self.path = Path(settings.touch_file)

    def reload(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
            os.utime(self.path, None)
        except OSError as e:
            raise ReloadError(f"touch 실패: {self.path}: {e}") from e
        logger.info(f"[Reloader] touch 완료: {self.path}")


@register_reloader("signal")
class SignalReloader(Reloader):
    """pid 파일의 프로세스에 시그널 전송

    pid 파일은 매 리로드마다 다시 읽습니다 (Rails 재시작 시 pid 변경).
    """

    def __init__(self, settings: ReloadSettings):
        if not settings.pid_file:
            raise ConfigurationError("signal reloader에는 pid 파일 경로가 필요합니다")
        self.pid_file = Path(settings.pid_file)
        self.signal = resolve_signal(settings.signal_name)

    def read_pid(self) -> int:
        try:
            pid = int(self.pid_file.read_text(encoding="utf-8").strip())
        except OSError as e:
            raise ReloadError(f"pid 파일 읽기 실패: {self.pid_file}: {e}") from e
        except ValueError as e:
            raise ReloadError(f"잘못된 pid 파일 내용: {self.pid_file}") from e

        # 0 이하는 os.kill에서 프로세스 그룹 전체 대상이 됨
        if pid <= 0:
            raise ReloadError(f"잘못된 pid 파일 내용: {self.pid_file} (pid={pid})")
        return pid

    def reload(self) -> None:
        pid = self.read_pid()
        try:
            os.kill(pid, self.signal)
        except OSError as e:
            raise ReloadError(
                f"시그널 전송 실패: pid={pid}, signal={self.signal.name}: {e}"
            ) from e
        logger.info(f"[Reloader] {self.signal.name} 전송 완료: pid={pid}")


@register_reloader("command")
class CommandReloader(Reloader):
    """셸 명령 실행 (종료 코드 0이 아니면 실패)"""

    def __init__(self, settings: ReloadSettings):
        if not settings.command:
            raise ConfigurationError("command reloader에는 실행할 명령이 필요합니다")
        self.command = settings.command
        self.timeout = settings.command_timeout

    def reload(self) -> None:
        try:
            result = subprocess.run(
                self.command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ReloadError(
                f"리로드 명령 타임아웃 ({self.timeout}초 초과): {self.command}"
            ) from e
        except OSError as e:
            raise ReloadError(f"리로드 명령 실행 실패: {e}") from e

        if result.returncode != 0:
            raise ReloadError(
                f"리로드 명령 실패 (exit={result.returncode}): {result.stderr.strip()}"
            )
        logger.info(f"[Reloader] 명령 실행 완료: {self.command}")


@register_reloader("none")
class NoopReloader(Reloader):
    def __init__(self, settings: ReloadSettings):
        pass

    def reload(self) -> None:
        logger.debug("[Reloader] none: 리로드 생략")
