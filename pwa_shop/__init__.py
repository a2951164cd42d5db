"""
PWA Shop - 오프라인 런타임(서비스 워커)과 푸시 알림 백엔드
"""

__version__ = "1.0.0"
