"""
알림 API 클라이언트

페이지 코드가 서버의 /api/notifications 엔드포인트를 호출할 때 사용합니다.
httpx.AsyncClient(보통 ServiceWorker.client()로 생성)를 받아서 사용하며,
인증 헤더(Authorization: Bearer ...)는 클라이언트 생성 시 설정합니다.
"""

from typing import Any, Dict, Optional

import httpx

from pwa_shop.api.schemas.push_schemas import PushSubscriptionInfo

NOTIFICATIONS_PATH = "/api/notifications"


class NotificationsAPI:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, path: str = "", **kwargs) -> Dict[str, Any]:
        """
        Raises:
            httpx.HTTPStatusError: 4xx/5xx 응답
            httpx.TransportError: 네트워크 오류
        """
        response = await self.client.request(method, f"{NOTIFICATIONS_PATH}{path}", **kwargs)
        response.raise_for_status()
        return response.json()

    async def get_vapid_key(self) -> str:
        data = await self._request("GET", "/vapid-public-key")
        return data["publicKey"]

    async def subscribe(self, subscription: PushSubscriptionInfo) -> Dict[str, Any]:
        return await self._request(
            "POST", "/subscribe", json={"subscription": subscription.model_dump()}
        )

    async def unsubscribe(self) -> Dict[str, Any]:
        return await self._request("DELETE", "/subscribe")

    async def send_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/send", json=payload)

    async def broadcast(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/broadcast", json=payload)

    async def get_notifications(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request("GET", "", params=params or {})

    async def mark_as_read(self, notification_id: str) -> Dict[str, Any]:
        return await self._request("PUT", f"/{notification_id}/read")

    async def mark_all_as_read(self) -> Dict[str, Any]:
        return await self._request("PUT", "/read-all")
