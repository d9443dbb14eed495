"""
Wire protocol handling.

Each connection carries exactly one JSON request and one JSON response::

    -> {"command": "resolve_ip", "ip": "fd00:1::5"}
    <- {"internal_ip": "fd00:1::5", "public_ip": "2001:db8:1::5",
        "interface": "eth0", "status": "success"}
"""

import json
import logging
import socket
from typing import Any, Dict, Optional

from .errors import AddressParseError, MappingNotFoundError, RequestError
from .resolver import Resolver

RECV_BUFFER_SIZE = 1024

CMD_RESOLVE = "resolve_ip"
CMD_GLOBAL = "get_global_ip"
CMD_GLOBAL_ALIAS = "get2kip"
CMD_PING = "ping"

logger = logging.getLogger(__name__)


def decode_request(data: bytes) -> Dict[str, Any]:
    """
    Decode a raw request body.

    Raises:
        RequestError: if the body is not a JSON object.
    """
    try:
        request = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise RequestError(f"Malformed request: {e}") from e

    if not isinstance(request, dict):
        raise RequestError("Malformed request: expected a JSON object")
    return request


def encode_response(response: Dict[str, Any]) -> bytes:
    return json.dumps(response).encode('utf-8')


def _required_ip(request: Dict[str, Any]) -> str:
    ip = request.get("ip")
    if ip is None or ip == "":
        raise RequestError("Missing IP parameter")
    if not isinstance(ip, str):
        raise RequestError("Invalid IP parameter")
    return ip


def not_found_response(error: MappingNotFoundError) -> Dict[str, Any]:
    response = {"ip": error.ip, "error": error.message, "status": "not_found"}
    if error.available_mappings is not None:
        response["available_mappings"] = error.available_mappings
    return response


def process_request(resolver: Resolver, request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Answer one decoded request.

    Never raises for per-request problems: every failure is turned into a
    response dictionary.
    """
    command = request.get("command", "")

    try:
        if command == CMD_PING:
            return {"status": "pong"}
        if command == CMD_RESOLVE:
            return resolver.resolve_ip(_required_ip(request)).to_response()
        if command in (CMD_GLOBAL, CMD_GLOBAL_ALIAS):
            return resolver.get_global_ip(_required_ip(request)).to_response()
    except RequestError as e:
        return {"error": str(e)}
    except AddressParseError:
        return {"error": "Invalid IPv6 address format"}
    except MappingNotFoundError as e:
        return not_found_response(e)

    return {"error": f"Unknown command: {command}"}


class RequestDispatcher:
    """Serves the single request of one accepted connection."""

    def __init__(self, resolver: Resolver, conn: socket.socket, peer: Optional[str] = None):
        self.resolver = resolver
        self.conn = conn
        self.peer = peer or "unknown peer"

    def handle(self, data: bytes) -> Dict[str, Any]:
        try:
            request = decode_request(data)
        except RequestError as e:
            logger.debug(f"Rejecting request from {self.peer}: {e}")
            return {"error": str(e)}

        try:
            response = process_request(self.resolver, request)
        except Exception as e:
            logger.exception(f"Unexpected error handling request from {self.peer}: {e}")
            return {"error": str(e)}
        logger.debug(f"{self.peer}: {request.get('command')!r} -> {response}")
        return response

    def serve(self):
        """Read one request, send one response, close the connection."""
        try:
            data = self.conn.recv(RECV_BUFFER_SIZE)
            if not data:
                return
            self.conn.sendall(encode_response(self.handle(data)))
        except OSError as e:
            logger.debug(f"Connection error with {self.peer}: {e}")
        finally:
            self.conn.close()
