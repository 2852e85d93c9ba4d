"""Shared HTTP client construction with a process-wide DNS resolution cache."""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import socket
import time
import typing
from typing import Dict, Optional, Tuple

import httpcore
import httpx

from context_service.config import get_settings
from .constants import BROWSER_HEADERS


class DNSCache:
    """
    Host -> address cache shared by every fetch in the process.

    Only touched from the event loop thread, so it needs no lock. If fetches
    ever run on several threads this must become synchronized.
    """

    def __init__(self, ttl_seconds: float = 300.0):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[Tuple[str, int], Tuple[str, float]] = {}

    def get(self, host: str, port: int) -> Optional[str]:
        entry = self._entries.get((host, port))
        if entry is None:
            return None
        address, expires_at = entry
        if expires_at < time.monotonic():
            self._entries.pop((host, port), None)
            return None
        return address

    def put(self, host: str, port: int, address: str) -> None:
        self._entries[(host, port)] = (address, time.monotonic() + self.ttl_seconds)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def resolve(self, host: str, port: int) -> Optional[str]:
        """Return a cached or freshly resolved address, or None when resolution fails."""
        cached = self.get(host, port)
        if cached is not None:
            return cached
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except (socket.gaierror, OSError):
            return None
        if not infos:
            return None
        address = str(infos[0][4][0])
        self.put(host, port, address)
        return address


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


class CachingNetworkBackend(httpcore.AsyncNetworkBackend):
    """Network backend that connects to cached addresses; TLS still verifies the original host name."""

    def __init__(self, inner: httpcore.AsyncNetworkBackend, dns_cache: DNSCache):
        self._inner = inner
        self._dns_cache = dns_cache

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[typing.Iterable[typing.Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        target = host
        if not _is_ip_literal(host):
            # Failed lookups fall through so httpcore raises its own ConnectError.
            target = await self._dns_cache.resolve(host, port) or host
        return await self._inner.connect_tcp(
            target,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[typing.Iterable[typing.Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._inner.connect_unix_socket(path, timeout=timeout, socket_options=socket_options)

    async def sleep(self, seconds: float) -> None:
        await self._inner.sleep(seconds)


# Most specific httpx exception first; httpcore's hierarchy mirrors httpx's.
_HTTPCORE_ERRORS: Tuple[Tuple[type, type], ...] = (
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.ProxyError, httpx.ProxyError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.ProtocolError, httpx.ProtocolError),
)


@contextlib.contextmanager
def _map_httpcore_errors() -> typing.Iterator[None]:
    try:
        yield
    except Exception as exc:
        for source, target in _HTTPCORE_ERRORS:
            if isinstance(exc, source):
                raise target(str(exc)) from exc
        raise


class _ResponseStream(httpx.AsyncByteStream):
    def __init__(self, stream: typing.AsyncIterable[bytes]) -> None:
        self._stream = stream

    async def __aiter__(self) -> typing.AsyncIterator[bytes]:
        with _map_httpcore_errors():
            async for chunk in self._stream:
                yield chunk

    async def aclose(self) -> None:
        if hasattr(self._stream, "aclose"):
            with _map_httpcore_errors():
                await self._stream.aclose()


class DNSCachingTransport(httpx.AsyncBaseTransport):
    """httpx transport over an httpcore pool whose TCP connects go through the DNS cache."""

    def __init__(
        self,
        dns_cache: DNSCache,
        *,
        limits: Optional[httpx.Limits] = None,
        network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
        http2: bool = False,
        retries: int = 0,
    ) -> None:
        limits = limits or httpx.Limits(max_connections=100, max_keepalive_connections=20)
        backend = network_backend if network_backend is not None else httpcore.AnyIOBackend()
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=httpx.create_ssl_context(),
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            http1=True,
            http2=http2,
            retries=retries,
            network_backend=CachingNetworkBackend(backend, dns_cache),
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with _map_httpcore_errors():
            core_response = await self._pool.handle_async_request(core_request)

        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_ResponseStream(core_response.stream),
            extensions=core_response.extensions,
        )

    async def aclose(self) -> None:
        await self._pool.aclose()



_dns_cache: Optional[DNSCache] = None


def get_dns_cache() -> DNSCache:
    global _dns_cache
    if _dns_cache is None:
        _dns_cache = DNSCache(ttl_seconds=float(get_settings().dns_cache_ttl_seconds))
    return _dns_cache


def build_http_client(
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build the AsyncClient used for search calls and page fetches.

    Args:
        timeout: Default per-request timeout in seconds
        transport: Override transport (tests pass an httpx.MockTransport)
    """
    settings = get_settings()
    limits = httpx.Limits(
        max_connections=settings.max_connections,
        max_keepalive_connections=settings.max_keepalive_connections,
    )
    if transport is None:
        transport = DNSCachingTransport(get_dns_cache(), limits=limits)
    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else settings.fetch_attempt_timeout_seconds,
        follow_redirects=True,
        headers=dict(BROWSER_HEADERS),
        transport=transport,
        # Proxy mounts from the environment would bypass the DNS cache.
        trust_env=False,
    )
