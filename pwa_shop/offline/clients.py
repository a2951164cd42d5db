"""
서비스 워커가 제어하는 페이지(윈도우 클라이언트) 목록

알림 클릭 시 이미 열린 페이지에 포커스하거나 새 창을 열고,
활성화 시 열린 페이지들의 제어권을 가져오는(claim) 데 사용됩니다.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class WindowClient:
    url: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    focused: bool = False
    controller: Optional[str] = None  # 제어 중인 워커 버전 (없으면 uncontrolled)

    @property
    def controlled(self) -> bool:
        return self.controller is not None


class Clients:
    """열린 윈도우 클라이언트 레지스트리"""

    def __init__(self):
        self._clients: dict[str, WindowClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def attach(self, url: str, controller: Optional[str] = None) -> WindowClient:
        """페이지가 열렸을 때 등록"""
        client = WindowClient(url=url, controller=controller)
        self._clients[client.id] = client
        return client

    def detach(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    async def match_all(self, include_uncontrolled: bool = False) -> list[WindowClient]:
        return [
            client
            for client in self._clients.values()
            if include_uncontrolled or client.controlled
        ]

    async def focus(self, client_id: str) -> WindowClient:
        target = self._clients[client_id]
        for client in self._clients.values():
            client.focused = client.id == client_id
        return target

    async def open_window(self, url: str, controller: Optional[str] = None) -> WindowClient:
        client = self.attach(url, controller=controller)
        await self.focus(client.id)
        logger.info(f"Opened window: {url}")
        return client

    async def claim(self, controller: str) -> int:
        """모든 열린 페이지를 지정 버전의 워커가 제어하도록 변경"""
        for client in self._clients.values():
            client.controller = controller
        logger.info(f"Claimed {len(self._clients)} clients for {controller}")
        return len(self._clients)
