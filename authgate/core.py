"""
authgate.core
~~~~~~~~~~~~~
Non-blocking HTTP gate: every request is checked by the decision engine
and either answered with a 401 challenge or relayed to the upstream.
"""

from __future__ import annotations

import asyncio
import ssl
import time
from typing import Dict, Tuple

from .config import Settings
from .directives import load_config_blocks
from .engine import AuthDecisionEngine, GateRequest, Verdict
from .errors import GateError
from .logger import GateLogger

CRLF = b"\r\n"
BUFFER = 65_536
MAX_HEAD = 64 * 1024


def run_gate(settings: Settings) -> None:
    engine = AuthDecisionEngine(load_config_blocks(settings.config_path), realm=settings.realm)
    gate = GateServer(settings, engine)
    try:
        asyncio.run(gate.serve_forever())
    except KeyboardInterrupt:
        print("\n▸ Gate shut down.")


class GateServer:
    def __init__(self, cfg: Settings, engine: AuthDecisionEngine, logger: GateLogger | None = None) -> None:
        self.cfg = cfg
        self.engine = engine
        self.logger = logger or GateLogger(cfg.log_path)

    async def start(self) -> asyncio.Server:
        ssl_ctx = _server_ssl_context() if self.cfg.use_tls else None
        return await asyncio.start_server(
            self._handle_client,
            host=self.cfg.listen_host,
            port=self.cfg.listen_port,
            ssl=ssl_ctx,
        )

    async def serve_forever(self) -> None:
        server = await self.start()

        bind_str = ", ".join(str(s.getsockname()) for s in server.sockets)
        print(
            f"▸ Gate listening on {bind_str}  (TLS={self.cfg.use_tls}, "
            f"upstream={self.cfg.upstream_host}:{self.cfg.upstream_port}, "
            f"blocks={len(self.engine.blocks)})"
        )

        async with server:
            await server.serve_forever()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        start_ts = time.time()
        peer = writer.get_extra_info("peername")
        peer_ip = peer[0] if peer else "-"
        method, path = "-", "-"

        try:
            req_line, headers = await _read_request_head(reader)
            method, target, _ = _parse_request_line(req_line)
            request = GateRequest.from_head(method, target, headers)
            path = request.path
            user = request.credentials.username if request.credentials else "-"

            verdict = self.engine.decide(request)
            if not verdict.allowed:
                await self._challenge(writer, verdict)
                self.logger.deny(
                    user,
                    peer_ip,
                    method,
                    path,
                    verdict.reason.value if verdict.reason else "",
                    verdict.block,
                )
                return

            self.logger.allow(user, peer_ip, method, path)
            relayed = await self._forward_http(reader, writer, req_line, headers)
            self.logger.end(
                user,
                method,
                path,
                200,
                relayed,
                int((time.time() - start_ts) * 1000),
            )

        except GateError as e:
            try:
                await _send_simple_response(writer, e.status, e.msg.encode())
            except ConnectionError:
                pass
            self.logger.error(peer_ip, method, path, e.status, e.msg)
        except Exception as e:  # noqa: BLE001
            self.logger.error(peer_ip, method, path, 500, repr(e))
            try:
                await _send_simple_response(writer, 500, b"Internal Server Error")
            except ConnectionError:
                pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _challenge(self, writer: asyncio.StreamWriter, verdict: Verdict) -> None:
        await _send_simple_response(
            writer, verdict.status, b"Unauthorized", verdict.challenge_headers()
        )

    async def _forward_http(
        self,
        client_reader: asyncio.StreamReader,
        client_writer: asyncio.StreamWriter,
        req_line: bytes,
        headers: Dict[str, str],
    ) -> int:
        chunked, length = _body_framing(headers)
        if chunked:
            headers = {k: v for k, v in headers.items() if k != "content-length"}

        host, port = self.cfg.upstream_host, self.cfg.upstream_port
        try:
            remote_reader, remote_writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise GateError(502, f"Upstream connect failed: {e}") from e

        try:
            remote_writer.write(_rebuild_request_head(req_line, headers))
            await remote_writer.drain()

            # only this request's body goes upstream; anything the client
            # sends after it is never read
            response = asyncio.create_task(_pipe_stream(remote_reader, client_writer))
            try:
                await _send_body(client_reader, remote_writer, chunked, length)
            except BaseException:
                response.cancel()
                raise
            relayed = await response
        finally:
            remote_writer.close()
            try:
                await remote_writer.wait_closed()
            except ConnectionError:
                pass
        return relayed


async def _read_request_head(reader: asyncio.StreamReader) -> Tuple[bytes, Dict[str, str]]:
    head = b""
    while True:
        line = await reader.readline()
        if not line:
            raise GateError(400, "Bad Request: EOF before headers complete")
        head += line
        if len(head) > MAX_HEAD:
            raise GateError(431, "Request Header Fields Too Large")
        if line == CRLF:
            break

    lines = head.split(CRLF)[:-1]
    if not lines or not lines[0]:
        raise GateError(400, "Bad Request: empty head")

    req_line = lines[0]
    hdrs = {}
    for raw in lines[1:]:
        if b":" in raw:
            k, v = raw.split(b":", 1)
            hdrs[k.decode("latin-1").strip().lower()] = v.decode("latin-1").strip()
    return req_line, hdrs


def _parse_request_line(line: bytes) -> Tuple[str, str, str]:
    try:
        method, target, version = line.decode("latin-1").strip().split()
    except ValueError:
        raise GateError(400, "Bad Request: malformed request-line") from None
    return method, target, version


_HOP_BY_HOP = {
    "proxy-authorization",
    "proxy-connection",
    "connection",
    "keep-alive",
    "te",
    "trailer",
    "upgrade",
}


def _rebuild_request_head(req_line: bytes, headers: Dict[str, str]) -> bytes:
    head = bytearray(req_line.rstrip() + CRLF)
    for k, v in headers.items():
        if k.lower() not in _HOP_BY_HOP:
            head.extend(f"{k}: {v}".encode("latin-1") + CRLF)
    # one request per connection: a kept-alive pipe would bypass the gate
    head.extend(b"Connection: close" + CRLF)
    head.extend(CRLF)
    return bytes(head)


def _body_framing(headers: Dict[str, str]) -> Tuple[bool, int]:
    """(chunked, content_length) for the request body."""
    te = headers.get("transfer-encoding")
    if te is not None:
        if te.split(",")[-1].strip().lower() != "chunked":
            raise GateError(400, "Bad Request: unsupported Transfer-Encoding")
        return True, 0

    raw = headers.get("content-length", "0").strip()
    if not raw.isdigit():
        raise GateError(400, "Bad Request: invalid Content-Length")
    return False, int(raw)


async def _copy_exact(src: asyncio.StreamReader, dst: asyncio.StreamWriter, n: int) -> None:
    while n > 0:
        chunk = await src.read(min(n, BUFFER))
        if not chunk:
            raise GateError(400, "Bad Request: body shorter than declared")
        dst.write(chunk)
        n -= len(chunk)
        await dst.drain()


async def _copy_chunked(src: asyncio.StreamReader, dst: asyncio.StreamWriter) -> None:
    while True:
        line = await src.readline()
        if not line.endswith(CRLF):
            raise GateError(400, "Bad Request: truncated chunk header")
        try:
            size = int(line.split(b";", 1)[0].strip(), 16)
        except ValueError:
            raise GateError(400, "Bad Request: bad chunk size") from None
        dst.write(line)
        if size == 0:
            break
        await _copy_exact(src, dst, size)
        if await src.readline() != CRLF:
            raise GateError(400, "Bad Request: missing chunk terminator")
        dst.write(CRLF)
        await dst.drain()

    # trailer section ends with an empty line
    while True:
        line = await src.readline()
        if not line.endswith(CRLF):
            raise GateError(400, "Bad Request: truncated trailers")
        dst.write(line)
        if line == CRLF:
            break
    await dst.drain()


async def _send_body(
    src: asyncio.StreamReader,
    dst: asyncio.StreamWriter,
    chunked: bool,
    length: int,
) -> None:
    if chunked:
        await _copy_chunked(src, dst)
    else:
        await _copy_exact(src, dst, length)
    if dst.can_write_eof():
        dst.write_eof()


_REASONS = {
    200: "OK",
    400: "Bad Request",
    401: "Unauthorized",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


async def _send_simple_response(
    writer: asyncio.StreamWriter,
    status: int,
    body: bytes = b"",
    extra_headers: Dict[str, str] | None = None,
) -> None:
    head = f"HTTP/1.1 {status} {_REASONS.get(status, 'Error')}\r\n"
    for k, v in (extra_headers or {}).items():
        head += f"{k}: {v}\r\n"
    head += f"Content-Length: {len(body)}\r\nConnection: close\r\n\r\n"
    writer.write(head.encode("latin-1") + body)
    await writer.drain()


async def _pipe_stream(src: asyncio.StreamReader, dst: asyncio.StreamWriter) -> int:
    total = 0
    try:
        while not src.at_eof():
            chunk = await src.read(BUFFER)
            if not chunk:
                break
            dst.write(chunk)
            total += len(chunk)
            await dst.drain()
    except ConnectionError:
        pass
    finally:
        dst.close()
        try:
            await dst.wait_closed()
        except ConnectionError:
            pass
    return total


def _server_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ctx.load_cert_chain("server.pem", "server.key")
    return ctx
