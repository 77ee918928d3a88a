import socket

# Any routable address works; connect() on a UDP socket sends nothing.
_PROBE_ADDRESS = ("10.255.255.255", 1)


def get_local_ip() -> str:
    """
    Returns the IPv4 address this host uses for outbound traffic, or
    "localhost" when no non-loopback interface is available.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(_PROBE_ADDRESS)
        address = sock.getsockname()[0]
    except OSError:
        return "localhost"
    finally:
        sock.close()

    if not address or address.startswith("127.") or address == "0.0.0.0":
        return "localhost"
    return address
