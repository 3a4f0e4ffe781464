"""レート制限用の送信者識別キーを導出する。"""

from __future__ import annotations

import hashlib
import ipaddress

from fastapi import Request

_UNKNOWN = "unknown"
_IPV6_PREFIX = 64


def coarse_address(address: str | None) -> str:
    """IPv4 はそのまま、IPv6 は /64 ネットワークに丸める。"""

    if not address:
        return _UNKNOWN
    try:
        parsed = ipaddress.ip_address(address.strip())
    except ValueError:
        return _UNKNOWN
    if isinstance(parsed, ipaddress.IPv6Address):
        if parsed.ipv4_mapped is not None:
            return str(parsed.ipv4_mapped)
        network = ipaddress.IPv6Network(f"{parsed}/{_IPV6_PREFIX}", strict=False)
        return str(network)
    return str(parsed)


def derive_identity(address: str | None) -> str:
    """生のアドレスを残さないようハッシュ化した識別キーを返す。"""

    coarse = coarse_address(address)
    return hashlib.sha256(coarse.encode()).hexdigest()[:32]


def identity_from_request(
    request: Request, *, trust_forwarded_for: bool, trusted_proxy_count: int = 1
) -> str:
    """送信者の識別キーを返す。

    X-Forwarded-For の左側はクライアントが自由に書けるため、信頼するプロキシが
    右端から追記した `trusted_proxy_count` 番目のホップだけを使う。ホップが
    足りなければ接続元アドレスに戻る。
    """

    address: str | None = None
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            if len(hops) >= trusted_proxy_count:
                address = hops[-trusted_proxy_count]
    if address is None and request.client:
        address = request.client.host
    return derive_identity(address)
