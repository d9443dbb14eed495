#!/usr/bin/env python3
"""
SlickNAT query client (slnatc)

Sends one request to a running slnatcd and prints the answer.

Commands:
- get2kip [ip]   Global unicast address of a local or given internal address
- resolve <ip>   Translate an address in either direction
- ping           Check that the daemon answers

Exit code is 0 on success and 1 on any error, connection failure or
not-found answer.
"""

import argparse
import ipaddress
import json
import logging
import socket
import sys
from typing import Any, Dict, Optional

from .config import DEFAULT_PORT
from .dispatcher import CMD_GLOBAL_ALIAS, CMD_PING, CMD_RESOLVE
from .logutil import setup_logging

RESPONSE_BUFFER_SIZE = 2048
IF_INET6_PATH = "/proc/net/if_inet6"

logger = logging.getLogger(__name__)


class SlickNatClient:
    """Speaks the one-request-per-connection protocol of slnatcd."""

    def __init__(self, address: str, port: int = DEFAULT_PORT):
        self.address = address
        self.port = port

    def __str__(self):
        return f"[{self.address}]:{self.port}"

    def send_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one request and wait for the answer.

        Network and decoding failures are reported the way the daemon
        reports errors, as ``{"error": ...}``, instead of being raised.
        """
        try:
            ipaddress.IPv6Address(self.address)
        except ipaddress.AddressValueError:
            return {"error": "Invalid server IPv6 address"}

        try:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        except OSError:
            return {"error": "Failed to create socket"}

        with sock:
            try:
                sock.connect((self.address, self.port))
            except OSError as e:
                logger.debug(f"connect() failed: {e}")
                return {"error": f"Cannot connect to daemon at {self}"}

            try:
                sock.sendall(json.dumps(request).encode('utf-8'))
            except OSError:
                return {"error": "Failed to send request"}

            try:
                data = sock.recv(RESPONSE_BUFFER_SIZE)
            except OSError:
                data = b""

        if not data:
            return {"error": "Failed to receive response"}

        try:
            response = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            return {"error": f"Failed to parse response: {e}"}
        if not isinstance(response, dict):
            return {"error": "Failed to parse response: expected a JSON object"}
        return response

    def resolve_ip(self, ip: str) -> Dict[str, Any]:
        return self.send_request({"command": CMD_RESOLVE, "ip": ip})

    def get_global_ip(self, ip: str) -> Dict[str, Any]:
        return self.send_request({"command": CMD_GLOBAL_ALIAS, "ip": ip})

    def ping(self) -> Dict[str, Any]:
        return self.send_request({"command": CMD_PING})


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------

def expand_ipv6_prefix(prefix: str) -> str:
    """
    Turn a short daemon address into a full literal.

    A valid literal is returned unchanged; a bare number such as "7000"
    becomes "7000::1". Anything else is returned as-is for the caller to
    reject.
    """
    try:
        ipaddress.IPv6Address(prefix)
        return prefix
    except ipaddress.AddressValueError:
        pass

    if "::" in prefix or prefix.count(":") >= 2:
        return prefix

    if prefix.isascii() and prefix.isdigit():
        return f"{prefix}::1"

    return prefix


def get_local_address_in_prefix(prefix: str, if_inet6_path: str = IF_INET6_PATH) -> Optional[str]:
    """
    Pick a local address that looks like it belongs to ``prefix``.

    Reads the kernel's interface address list and returns the first address
    whose exploded form starts with the first four characters of ``prefix``.
    """
    head = prefix[:4].lower()
    try:
        with open(if_inet6_path, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        logger.debug(f"Cannot read {if_inet6_path}: {e}")
        return None

    for line in lines:
        fields = line.split()
        if not fields or len(fields[0]) != 32:
            continue
        try:
            address = ipaddress.IPv6Address(int(fields[0], 16))
        except ValueError:
            continue
        if address.exploded.startswith(head):
            return str(address)

    return None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def print_error(response: Dict[str, Any], client: SlickNatClient, context: str = "Daemon connection"):
    print(f"Error: {response['error']}", file=sys.stderr)
    print(f"{context}: {client}", file=sys.stderr)


def print_interface(response: Dict[str, Any]):
    if "interface" in response:
        print(f"Interface: {response['interface']}")


def cmd_get2kip(client: SlickNatClient, target_ip: str) -> int:
    print(f"Connecting to daemon at {client}")
    print(f"Querying global IP for: {target_ip}")

    response = client.get_global_ip(target_ip)
    if "error" in response and response.get("status") != "not_found":
        print_error(response, client)
        return 1
    if response.get("status") == "success":
        print(f"Internal IP: {response['internal_ip']}")
        print(f"Global IP: {response['global_ip']}")
        print_interface(response)
        return 0

    print(f"IP {target_ip} not found in global mappings")
    print(f"Daemon connection: {client}")
    return 1


def cmd_resolve(client: SlickNatClient, target_ip: str) -> int:
    response = client.resolve_ip(target_ip)
    if "error" in response and response.get("status") != "not_found":
        print(f"Error: {response['error']}", file=sys.stderr)
        return 1
    if response.get("status") == "success":
        if "public_ip" in response:
            print(f"Internal IP: {response['internal_ip']}")
            print(f"Public IP: {response['public_ip']}")
        elif "external_ip" in response:
            print(f"External IP: {response['external_ip']}")
            print(f"Internal IP: {response['internal_ip']}")
        print_interface(response)
        return 0

    print(f"IP {target_ip} not found in mappings")
    return 1


def cmd_ping(client: SlickNatClient) -> int:
    print(f"Pinging daemon at {client}")
    response = client.ping()
    if "error" in response:
        print_error(response, client, "Tried to connect to")
        return 1

    print(f"Daemon at {client} is running")
    if "status" in response:
        print(f"Response: {response['status']}")
    return 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Query a SlickNAT daemon',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  get2kip [ip]    Get global unicast IP for local/specified IP
  resolve <ip>    Resolve IP address mapping
  ping            Ping the daemon

Examples:
  %(prog)s ::1 get2kip 7607:af56:abb1:c7::100
  %(prog)s 7000 get2kip
  %(prog)s ::1 resolve 2a0a:8dc0:509b:21::1
  %(prog)s ::1 ping
        """
    )
    parser.add_argument('daemon_address', help='IPv6 address of the daemon (or a numeric prefix)')
    parser.add_argument('command', help='get2kip, resolve or ping')
    parser.add_argument('ip', nargs='?', help='Address to look up')
    parser.add_argument(
        '-p', '--port',
        type=int,
        default=DEFAULT_PORT,
        help=f'Daemon port (default: {DEFAULT_PORT})'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # usage errors exit 1 like every other failure
        sys.exit(0 if e.code == 0 else 1)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    daemon_address = expand_ipv6_prefix(args.daemon_address)
    try:
        ipaddress.IPv6Address(daemon_address)
    except ipaddress.AddressValueError:
        print(f"Error: Invalid IPv6 address format: {daemon_address}", file=sys.stderr)
        print(f"Original input: {args.daemon_address}", file=sys.stderr)
        sys.exit(1)

    client = SlickNatClient(daemon_address, args.port)

    if args.command == 'get2kip':
        target_ip = args.ip or get_local_address_in_prefix(args.daemon_address)
        if not target_ip:
            print("Error: Could not determine local IP address. Please specify an IP address.",
                  file=sys.stderr)
            print(f"Usage: {parser.prog} {args.daemon_address} get2kip <ip_address>", file=sys.stderr)
            sys.exit(1)
        sys.exit(cmd_get2kip(client, target_ip))

    if args.command == 'resolve':
        if not args.ip:
            print("Error: IP address required for resolve command", file=sys.stderr)
            sys.exit(1)
        sys.exit(cmd_resolve(client, args.ip))

    if args.command == 'ping':
        sys.exit(cmd_ping(client))

    print(f"Unknown command: {args.command}", file=sys.stderr)
    parser.print_usage(sys.stderr)
    sys.exit(1)


if __name__ == '__main__':
    main()
