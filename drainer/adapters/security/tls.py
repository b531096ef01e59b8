"""
TLS 上下文构建（drainer.adapters.security.tls）

把 security 段的证书路径转换为可直接使用的 ssl.SSLContext：
- 三个路径都为空：不启用 TLS，返回 None
- 否则加载 CA（可选）与证书/私钥对（必须成对提供）
任何失败都是致命错误，不存在"部分启用"的模式。
"""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING, Optional

from drainer.core.exceptions import SecurityConfigError

if TYPE_CHECKING:
    from drainer.core.config.models import SecurityConfig

logger = logging.getLogger(__name__)


def build_tls_context(security: SecurityConfig) -> Optional[ssl.SSLContext]:
    if not security.enabled:
        return None

    context = {
        "ssl_ca": security.ssl_ca,
        "ssl_cert": security.ssl_cert,
        "ssl_key": security.ssl_key,
    }
    if bool(security.ssl_cert) != bool(security.ssl_key):
        raise SecurityConfigError(
            "ssl-cert 与 ssl-key 必须同时配置", context=context
        )

    try:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if security.ssl_ca:
            ctx.load_verify_locations(cafile=security.ssl_ca)
        if security.ssl_cert:
            ctx.load_cert_chain(certfile=security.ssl_cert, keyfile=security.ssl_key)
    except (OSError, ssl.SSLError) as e:
        raise SecurityConfigError(
            f"TLS 配置错误 {context}", context=context, cause=e
        ) from e

    logger.info(
        "TLS 已启用",
        extra={"event": "config.tls.enabled", "extra": context},
    )
    return ctx
