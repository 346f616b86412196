"""
etcd v2 HTTP API 클라이언트 (비동기)

rails-configd가 사용하는 기능만 구현:
- 클러스터 동기화 (/v2/members)
- 디렉토리 재귀 조회 (스냅샷)
- 재귀 watch (long-poll) → asyncio.Queue로 이벤트 전달
- 여러 엔드포인트 간 장애 조치
"""

import asyncio
import contextlib
import logging

import httpx

from .errors import ErrorCategory, ErrorClassifier, StoreError
from .types import (
    ECODE_EVENT_INDEX_CLEARED,
    ECODE_KEY_NOT_FOUND,
    ECODE_NOT_DIR,
    ChangeEvent,
    EtcdErrorBody,
    EtcdResponse,
    Snapshot,
)

logger = logging.getLogger(__name__)

# 닫힌 watch 스트림을 나타내는 큐 센티넬
STREAM_CLOSED = None


class EtcdClient:
    """비동기 etcd v2 클라이언트

    Note: 요청마다 httpx.AsyncClient를 새로 생성 (long-poll 취소 시 커넥션 정리 단순화)
    """

    def __init__(
        self,
        endpoints: list[str] | str,
        timeout: float = 5.0,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ):
        if isinstance(endpoints, str):
            endpoints = [e.strip() for e in endpoints.split(",") if e.strip()]
        self.endpoints = [e.rstrip("/") for e in endpoints]
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay

    def _create_client(self, base_url: str, long_poll: bool = False) -> httpx.AsyncClient:
        """새로운 HTTP 클라이언트 생성 (매 요청마다)

        long-poll 요청은 읽기 타임아웃 없이 대기합니다.
        """
        timeout = httpx.Timeout(self.timeout, read=None if long_poll else self.timeout)
        return httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @staticmethod
    def _keys_path(key: str) -> str:
        return "/v2/keys/" + key.lstrip("/")

    async def _request(
        self,
        path: str,
        params: dict[str, str] | None = None,
        long_poll: bool = False,
    ) -> httpx.Response:
        """엔드포인트를 순서대로 시도하여 GET 요청

        Raises:
            StoreError: 모든 엔드포인트 연결 실패
        """
        last_error: Exception | None = None

        for endpoint in self.endpoints:
            try:
                async with self._create_client(endpoint, long_poll) as client:
                    return await client.get(path, params=params)
            except httpx.TransportError as e:
                logger.warning(f"[Etcd] {endpoint} 요청 실패: {e}")
                last_error = e

        raise StoreError(
            f"etcd 서버 연결 실패 ({', '.join(self.endpoints)}): {last_error}",
            ErrorCategory.RETRYABLE,
        ) from last_error

    @staticmethod
    def _error_from_response(response: httpx.Response) -> StoreError:
        """etcd 에러 응답 → StoreError"""
        try:
            body = EtcdErrorBody.model_validate(response.json())
        except ValueError:
            category = (
                ErrorCategory.RETRYABLE
                if response.status_code >= 500
                else ErrorCategory.NON_RETRYABLE
            )
            return StoreError(
                f"etcd 요청 실패: HTTP {response.status_code} {response.text.strip()}",
                category,
            )

        if body.error_code in (ECODE_KEY_NOT_FOUND, ECODE_NOT_DIR):
            category = ErrorCategory.NON_RETRYABLE
        elif body.error_code == ECODE_EVENT_INDEX_CLEARED or response.status_code >= 500:
            category = ErrorCategory.RETRYABLE
        else:
            category = ErrorCategory.UNKNOWN

        cause = f" ({body.cause})" if body.cause else ""
        return StoreError(
            f"etcd 에러 {body.error_code}: {body.message}{cause}",
            category,
            error_code=body.error_code,
            index=body.index,
        )

    @staticmethod
    def _parse_response(response: httpx.Response) -> EtcdResponse:
        try:
            return EtcdResponse.model_validate(response.json())
        except ValueError as e:
            raise StoreError(
                f"etcd 응답 파싱 실패: {e}", ErrorCategory.NON_RETRYABLE
            ) from e

    async def sync_cluster(self) -> bool:
        """클러스터 멤버의 client URL로 엔드포인트 목록 갱신

        Returns:
            bool: 동기화 성공 여부
        """
        try:
            response = await self._request("/v2/members")
        except StoreError as e:
            logger.error(f"[Etcd] 클러스터 동기화 실패: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"[Etcd] 클러스터 동기화 실패: HTTP {response.status_code}")
            return False

        try:
            members = response.json().get("members", [])
        except ValueError as e:
            logger.error(f"[Etcd] 멤버 목록 파싱 실패: {e}")
            return False

        urls: list[str] = []
        for member in members:
            for url in member.get("clientURLs", []):
                url = url.rstrip("/")
                if url not in urls:
                    urls.append(url)

        if urls:
            self.endpoints = urls

        logger.info(f"[Etcd] 클러스터 동기화 완료: {', '.join(self.endpoints)}")
        return True

    async def get(self, key: str, recursive: bool = True) -> Snapshot:
        """키 조회 (디렉토리면 하위 노드 포함)

        Args:
            key: etcd 키 (예: /rails/production)
            recursive: 하위 디렉토리까지 조회

        Returns:
            Snapshot: 노드와 조회 시점 X-Etcd-Index

        Raises:
            StoreError: 연결 실패, 키 없음, 응답 파싱 실패
        """
        params = {"sorted": "true"}
        if recursive:
            params["recursive"] = "true"

        response = await self._request(self._keys_path(key), params=params)
        if response.status_code != 200:
            raise self._error_from_response(response)

        parsed = self._parse_response(response)
        etcd_index = response.headers.get("X-Etcd-Index")
        return Snapshot(
            node=parsed.node,
            etcd_index=int(etcd_index) if etcd_index else None,
        )

    async def watch_once(self, key: str, wait_index: int | None = None) -> EtcdResponse | None:
        """다음 변경 1건을 long-poll로 대기

        Returns:
            EtcdResponse 또는 None (본문 없이 연결이 닫힌 경우)

        Raises:
            StoreError: 연결 실패 또는 etcd 에러 응답
        """
        params = {"wait": "true", "recursive": "true"}
        if wait_index is not None:
            params["waitIndex"] = str(wait_index)

        response = await self._request(self._keys_path(key), params=params, long_poll=True)
        if response.status_code != 200:
            raise self._error_from_response(response)

        if not response.content.strip():
            return None

        return self._parse_response(response)

    async def watch(
        self,
        key: str,
        queue: "asyncio.Queue[ChangeEvent | None]",
        stop_event: asyncio.Event,
        wait_index: int | None = None,
    ) -> None:
        """재귀 watch 루프 (이벤트 생산 태스크)

        변경을 받은 순서대로 큐에 넣고, stop_event가 설정되면 진행 중인 long-poll을
        취소합니다. 종료 시에는 항상 STREAM_CLOSED(None)를 넣어 소비자에게 알립니다.

        Args:
            key: watch 디렉토리
            queue: 이벤트 전달 큐
            stop_event: 종료 신호
            wait_index: 시작 인덱스 (스냅샷의 X-Etcd-Index + 1)

        Raises:
            StoreError: 재시도 불가 에러로 watch 중단
        """
        delay = self.retry_delay
        logger.info(f"[Etcd] watch 시작: {key} (waitIndex={wait_index})")
        request: asyncio.Task | None = None
        stopper: asyncio.Task | None = None

        try:
            while not stop_event.is_set():
                request = asyncio.create_task(self.watch_once(key, wait_index))
                stopper = asyncio.create_task(stop_event.wait())
                done, _ = await asyncio.wait(
                    {request, stopper}, return_when=asyncio.FIRST_COMPLETED
                )

                if request not in done:
                    request.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await request
                    break

                stopper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stopper

                try:
                    response = request.result()
                except StoreError as e:
                    if e.error_code == ECODE_EVENT_INDEX_CLEARED:
                        # 요청한 인덱스가 etcd 이벤트 히스토리에서 밀려남 → 현재 인덱스부터 재개
                        logger.warning(
                            f"[Etcd] waitIndex {wait_index} 만료, 현재 인덱스 {e.index}부터 재개 "
                            f"(중간 변경 누락 가능)"
                        )
                        wait_index = e.index + 1 if e.index else None
                        continue

                    if not ErrorClassifier.is_retryable(e):
                        logger.error(f"[Etcd] watch 중단: {ErrorClassifier.format_message(e)}")
                        raise

                    logger.warning(f"[Etcd] watch 에러, {delay:.0f}초 후 재시도: {e}")
                    if await self._sleep_or_stop(stop_event, delay):
                        break
                    delay = min(delay * 2, self.max_retry_delay)
                    continue

                delay = self.retry_delay
                if response is None:
                    continue

                if response.node.modified_index is not None:
                    wait_index = response.node.modified_index + 1

                try:
                    event = ChangeEvent.from_response(response)
                except ValueError:
                    logger.warning(f"[Etcd] 알 수 없는 action 무시: {response.action}")
                    continue

                await queue.put(event)
        finally:
            # watch 태스크 자체가 취소되면 진행 중인 long-poll과 대기 태스크도 정리
            for task in (request, stopper):
                if task is not None and not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            await queue.put(STREAM_CLOSED)
            logger.info(f"[Etcd] watch 종료: {key}")

    @staticmethod
    async def _sleep_or_stop(stop_event: asyncio.Event, delay: float) -> bool:
        """delay초 대기, 그 사이 종료 신호가 오면 True"""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False
