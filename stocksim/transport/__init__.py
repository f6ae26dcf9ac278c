"""
Transports.

- framing: client stream frames (router side)
- datagram: UDP service endpoints and the router's backend client
"""

from stocksim.transport.datagram import (
    BackendMetrics,
    DatagramServer,
    DatagramServiceProtocol,
    UdpBackendClient,
)
from stocksim.transport.framing import REPLY_TERMINATOR, FrameReader, encode_reply

__all__ = [
    "BackendMetrics",
    "DatagramServer",
    "DatagramServiceProtocol",
    "UdpBackendClient",
    "FrameReader",
    "REPLY_TERMINATOR",
    "encode_reply",
]
