"""
IPv6 stream listeners.

One accept loop runs per configured address. Every accepted connection is
handed to a RequestDispatcher on its own daemon thread, which is neither
joined nor tracked. Reads and writes carry no timeout.
"""

import logging
import socket
import threading
from typing import List, Optional

from .dispatcher import RequestDispatcher
from .resolver import Resolver

LISTEN_BACKLOG = 5


class ShutdownContext:
    """Stop signal shared by the daemon's threads, plus the open listeners."""

    def __init__(self):
        self.stop_event = threading.Event()
        self._listeners: List["ConnectionListener"] = []
        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    def register(self, listener: "ConnectionListener"):
        with self._lock:
            self._listeners.append(listener)

    def shutdown(self):
        """Set the stop event and close every registered listener."""
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener.close()
        self.logger.info("SlickNat daemon stopped")


class ConnectionListener:
    """Accept loop for one ``[address]:port``."""

    def __init__(self, address: str, port: int, resolver: Resolver, shutdown: ShutdownContext):
        self.address = address
        self.port = port
        self.resolver = resolver
        self.shutdown = shutdown
        self.sock: Optional[socket.socket] = None
        self.logger = logging.getLogger(__name__)

    def __str__(self):
        return f"[{self.address}]:{self.port}"

    def bind(self):
        """
        Create, bind and listen on an IPv6-only socket.

        Raises:
            OSError: if the socket cannot be created, bound or put in
                listening mode. The socket is closed first.
        """
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.address, self.port))
            sock.listen(LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise

        self.sock = sock
        # Port 0 asks the kernel for a free port
        self.port = sock.getsockname()[1]
        self.shutdown.register(self)
        self.logger.info(f"Listening on {self}")

    def close(self):
        sock, self.sock = self.sock, None
        if sock is None:
            return
        try:
            # shutdown() wakes a thread blocked in accept(); close() alone does not
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            self.logger.debug(f"shutdown() failed on {self}: {e}")
        sock.close()

    def accept_loop(self):
        """Accept connections until the daemon shuts down."""
        while not self.shutdown.stopping:
            sock = self.sock
            if sock is None:
                return
            try:
                conn, peer_addr = sock.accept()
            except OSError as e:
                if self.shutdown.stopping:
                    return
                self.logger.error(f"Accept failed on {self}: {e}")
                continue

            peer = f"[{peer_addr[0]}]:{peer_addr[1]}"
            self.logger.debug(f"Client connected from {peer} to {self}")

            dispatcher = RequestDispatcher(self.resolver, conn, peer)
            threading.Thread(
                target=dispatcher.serve,
                name=f"slnat-client-{peer}",
                daemon=True
            ).start()

    def start(self) -> threading.Thread:
        """Run ``accept_loop`` on a new thread."""
        thread = threading.Thread(
            target=self.accept_loop,
            name=f"slnat-accept-{self}",
            daemon=True
        )
        thread.start()
        return thread
