"""Listening socket creation."""

import socket

ACCEPT_POLL_SECONDS = 0.2


def create_server_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on ``host:port``; an empty host binds every interface.

    The socket gets a short timeout so the accept loop can notice shutdown.
    """
    server_socket = None
    if not host and socket.has_dualstack_ipv6():
        try:
            server_socket = socket.create_server(
                ("", port), family=socket.AF_INET6, dualstack_ipv6=True
            )
        except OSError:
            # IPv6 compiled in but unavailable in this network namespace
            server_socket = None
    if server_socket is None:
        server_socket = socket.create_server((host, port))
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket
