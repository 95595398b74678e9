import socket
from urllib.parse import urlparse

"""Network helper utilities.

``get_local_ip`` returns a usable LAN address for the startup banner;
``remote_host`` extracts the host of the configured remote store for logging
without leaking the rest of the URL.
"""


def get_local_ip() -> str:
    """Return a non-loopback local IP address if possible, otherwise '127.0.0.1'.

    Connecting a UDP socket sends nothing; it only makes the OS pick the
    outgoing interface.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        ip = str(s.getsockname()[0])
    except OSError:
        ip = "127.0.0.1"
    finally:
        s.close()
    return ip


def remote_host(url: str) -> str:
    """Host part of a remote store URL, or '' when the URL is empty or malformed."""
    if not url:
        return ""
    return urlparse(url if "://" in url else f"https://{url}").hostname or ""
