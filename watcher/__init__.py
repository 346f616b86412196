"""
rails-configd 데몬 모듈

etcd watch 기반 Rails 설정 동기화 데몬.
"""

from .config import WatcherConfig
from .health import HealthServer
from .main import ConfigDaemon, run
from .session import ConfigSession, WatchLoop

__all__ = [
    "WatcherConfig",
    "ConfigSession",
    "WatchLoop",
    "ConfigDaemon",
    "HealthServer",
    "run",
]
