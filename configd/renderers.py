"""
설정 파일 렌더러

트리를 Rails 설정 파일로 출력하는 전략 모음.
이름으로 등록하고 시작 시 open_renderer()로 선택합니다.

출력 형식 (yaml 기준, watch 루트 /rails/production, env=production):
    tree: {"database": {"host": "db1"}, "redis": {"url": "..."}}
    config/database.yml  →  production: {host: db1}
    config/redis.yml     →  production: {url: ...}
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import yaml

from .errors import ConfigurationError, RenderError
from .tree import ConfigTree

logger = logging.getLogger(__name__)


@dataclass
class RenderSettings:
    """렌더러 공통 설정"""

    output_dir: str = "config"
    environment: str = "production"


class Renderer(ABC):
    """렌더러 인터페이스"""

    name = ""

    @abstractmethod
    def render(self, tree: ConfigTree) -> list[Path]:
        """트리를 설정 파일로 출력

        Returns:
            list[Path]: 작성한 파일 목록

        Raises:
            RenderError: 출력 실패
        """


_RENDERERS: dict[str, type[Renderer]] = {}


def register_renderer(name: str) -> Callable[[type[Renderer]], type[Renderer]]:
    """렌더러 클래스를 이름으로 등록하는 데코레이터"""

    def decorator(cls: type[Renderer]) -> type[Renderer]:
        cls.name = name
        _RENDERERS[name] = cls
        return cls

    return decorator


def available_renderers() -> list[str]:
    return sorted(_RENDERERS)


def open_renderer(name: str, settings: RenderSettings | None = None) -> Renderer:
    """이름으로 렌더러 생성

    Raises:
        ConfigurationError: 등록되지 않은 이름
    """
    renderer_cls = _RENDERERS.get(name)
    if renderer_cls is None:
        raise ConfigurationError(
            f"알 수 없는 renderer: {name} (사용 가능: {', '.join(available_renderers())})"
        )
    return renderer_cls(settings or RenderSettings())


class FileRenderer(Renderer):
    """최상위 키마다 <output_dir>/<key><extension> 파일을 작성하는 렌더러

    이전 렌더링에서 작성했지만 트리에서 사라진 키의 파일은 삭제합니다.
    """

    extension = ""

    def __init__(self, settings: RenderSettings):
        self.output_dir = Path(settings.output_dir)
        self.environment = settings.environment
        self._written: set[Path] = set()

    @abstractmethod
    def dump(self, data: dict[str, Any]) -> str:
        """파일 내용 직렬화"""

    def render(self, tree: ConfigTree) -> list[Path]:
        data = tree.to_dict()
        written: list[Path] = []

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)

            for name, subtree in sorted(data.items()):
                path = self.output_dir / f"{name}{self.extension}"
                self._write_atomic(path, self.dump({self.environment: subtree}))
                written.append(path)
                # 중간에 실패해도 이미 교체된 파일은 다음 렌더링의 정리 대상
                self._written.add(path)

            for stale in sorted(self._written - set(written)):
                stale.unlink(missing_ok=True)
                self._written.discard(stale)
                logger.info(f"[Renderer] 삭제된 키의 설정 파일 제거: {stale}")

        except (OSError, ValueError, yaml.YAMLError) as e:
            raise RenderError(f"{self.name} 렌더링 실패: {e}") from e

        logger.debug(f"[Renderer] {self.name} 렌더링 완료: {len(written)}개 파일")
        return written

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        """임시 파일에 쓴 뒤 교체 (리로더가 쓰다 만 파일을 읽지 않도록)"""
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


@register_renderer("yaml")
class YamlRenderer(FileRenderer):
    """Rails YAML 설정 파일 (database.yml 형식)"""

    extension = ".yml"

    def dump(self, data: dict[str, Any]) -> str:
        return yaml.safe_dump(
            data, default_flow_style=False, allow_unicode=True, sort_keys=True
        )


@register_renderer("json")
class JsonRenderer(FileRenderer):
    extension = ".json"

    def dump(self, data: dict[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
