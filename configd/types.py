"""
공용 타입 정의

etcd v2 응답 모델(Pydantic)과 변경 이벤트 타입.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChangeAction(str, Enum):
    """etcd v2 action 값"""

    GET = "get"
    SET = "set"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPIRE = "expire"
    COMPARE_AND_SWAP = "compareAndSwap"
    COMPARE_AND_DELETE = "compareAndDelete"

    @property
    def is_write(self) -> bool:
        """값을 쓰는 action 여부"""
        return self in (
            ChangeAction.SET,
            ChangeAction.CREATE,
            ChangeAction.UPDATE,
            ChangeAction.COMPARE_AND_SWAP,
        )

    @property
    def is_removal(self) -> bool:
        """키를 제거하는 action 여부"""
        return self in (
            ChangeAction.DELETE,
            ChangeAction.EXPIRE,
            ChangeAction.COMPARE_AND_DELETE,
        )


class EtcdNode(BaseModel):
    """etcd v2 노드 (디렉토리 또는 값)

    루트("/")를 조회하면 key가 비어 있으므로 기본값을 "/"로 둡니다.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str = "/"
    dir: bool = False
    value: str | None = None
    nodes: list["EtcdNode"] = Field(default_factory=list)
    ttl: int | None = None
    expiration: str | None = None
    created_index: int | None = Field(default=None, alias="createdIndex")
    modified_index: int | None = Field(default=None, alias="modifiedIndex")


class EtcdResponse(BaseModel):
    """etcd v2 /v2/keys 응답"""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    node: EtcdNode
    prev_node: EtcdNode | None = Field(default=None, alias="prevNode")


class EtcdErrorBody(BaseModel):
    """etcd v2 에러 응답 (4xx/5xx 본문)"""

    model_config = ConfigDict(populate_by_name=True)

    error_code: int = Field(alias="errorCode")
    message: str = ""
    cause: str | None = None
    index: int = 0


EtcdNode.model_rebuild()


# etcd 에러 코드
ECODE_KEY_NOT_FOUND = 100
ECODE_NOT_FILE = 102
ECODE_NOT_DIR = 104
ECODE_EVENT_INDEX_CLEARED = 401


@dataclass(frozen=True)
class ChangeEvent:
    """watch 스트림에서 전달되는 단일 변경 이벤트"""

    action: ChangeAction
    key: str
    value: str | None = None
    dir: bool = False
    index: int | None = None

    @classmethod
    def from_response(cls, response: EtcdResponse) -> "ChangeEvent":
        """etcd 응답을 이벤트로 변환

        Raises:
            ValueError: 알 수 없는 action
        """
        action = ChangeAction(response.action)
        node = response.node
        return cls(
            action=action,
            key=node.key,
            value=None if action.is_removal else node.value,
            dir=node.dir,
            index=node.modified_index,
        )


@dataclass
class Snapshot:
    """재귀 조회 결과와 조회 시점의 etcd 인덱스"""

    node: EtcdNode
    etcd_index: int | None = None
