"""
로깅 설정

서버(알림 API)와 오프라인 런타임이 같은 설정을 공유합니다.
푸시 구독 정보(endpoint 토큰, p256dh/auth 키), VAPID 개인 키, JWT 등은
핸들러 단계에서 마스킹되어 어떤 출력에도 그대로 남지 않습니다.
"""

import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# LogRecord 기본 속성 (extra로 전달된 필드만 골라내기 위해 사용)
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

MASK = "***"


class SensitiveDataFilter(logging.Filter):
    """
    민감 데이터 마스킹 필터

    메시지와 extra 필드의 문자열 값을 모두 검사합니다.
    """

    PATTERNS = (
        # 푸시 구독 키: "p256dh": "BNc..." / 'auth': 'tBH...'
        (
            re.compile(r"""(["']?(?:p256dh|auth)["']?\s*[:=]\s*["'])[^"']*(["'])""", re.I),
            rf"\g<1>{MASK}\g<2>",
        ),
        # 푸시 서비스 endpoint의 구독 토큰: .../fcm/send/<token> → .../fcm/send/***
        (
            re.compile(r"(https://[^\s\"']*/(?:send|push|wpush/v\d+)/)[A-Za-z0-9\-_:.%]+"),
            rf"\g<1>{MASK}",
        ),
        # PEM 개인 키 (VAPID)
        (
            re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----", re.S),
            f"<private key {MASK}>",
        ),
        # JWT: Bearer eyJ... / "access_token": "..."
        (
            re.compile(r"(Bearer\s+)[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+\.?[A-Za-z0-9\-_.+/=]*"),
            rf"\g<1>{MASK}",
        ),
        (
            re.compile(r'"(token|access_token|refresh_token|password)"\s*:\s*"[^"]*"', re.I),
            rf'"\g<1>": "{MASK}"',
        ),
    )

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_arg(v) for k, v in record.args.items()}
            else:
                record.args = tuple(self._mask_arg(arg) for arg in record.args)

        for name, value in list(vars(record).items()):
            if name not in _RESERVED_ATTRS and isinstance(value, str):
                setattr(record, name, self.mask(value))

        return True

    @classmethod
    def _mask_arg(cls, value: Any) -> Any:
        # %d, %.2f 포맷 인자는 원래 타입 유지
        return cls.mask(value) if isinstance(value, str) else value

    @classmethod
    def mask(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text


class JSONFormatter(logging.Formatter):
    """
    JSON 한 줄 로그

    `logger.info(..., extra={"cache_name": ...})`로 넘긴 필드는 최상위 키로 포함됩니다.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS and not name.startswith("_"):
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    루트 로거 설정

    인자가 없으면 LOG_LEVEL / LOG_FORMAT / LOG_FILE 환경 변수를 사용합니다.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR, CRITICAL
        log_format: "json" 또는 "text"
        log_file: 로그 파일 경로 (None이면 콘솔만)
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_format = log_format or os.getenv("LOG_FORMAT", "json")
    log_file = log_file or os.getenv("LOG_FILE")

    if log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers = [_build_handler(logging.StreamHandler(), formatter)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            _build_handler(logging.FileHandler(log_file, encoding="utf-8"), formatter)
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    # 캐시 조회마다 남는 SQL/HTTP 로그는 경고 이상만
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    모듈 로거

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("[OK] Precached 6 URLs", extra={"cache_name": "pwa-ecommerce-v1.0.0"})
        ```
    """
    return logging.getLogger(name)


class AuditLogger:
    """구독 등록/해지, 브로드캐스트 같은 알림 이벤트 기록 (logger: pwa_shop.audit)"""

    def __init__(self, name: str = "pwa_shop.audit"):
        self.logger = get_logger(name)

    def log_event(
        self,
        event_type: str,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.logger.info(
            f"[AUDIT] {event_type}",
            extra={
                "event_type": event_type,
                "user_id": user_id,
                "resource_type": resource_type,
                "action": action,
                "details": details or {},
            },
        )


audit_logger = AuditLogger()
