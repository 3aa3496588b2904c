"""
Helpers for container log output.
"""

_HEADER_SIZE = 8
_STREAM_TYPES = (0, 1, 2)


def trim_log_headers(raw: bytes) -> str:
    """
    Strips the 8 byte multiplexing headers the engine prepends to each log frame
    of a non-tty container and decodes the payload.

    Output that is not framed (tty containers, or clients that already
    de-multiplexed it) is decoded unchanged.

    :param raw: Log bytes as returned by the engine.
    :return: The decoded log text.
    """
    if not _is_framed(raw):
        return raw.decode("utf-8", errors="replace")

    chunks = []
    offset = 0
    while offset + _HEADER_SIZE <= len(raw):
        size = int.from_bytes(raw[offset + 4:offset + _HEADER_SIZE], "big")
        start = offset + _HEADER_SIZE
        chunks.append(raw[start:start + size])
        offset = start + size
    return b"".join(chunks).decode("utf-8", errors="replace")


def _is_framed(raw: bytes) -> bool:
    offset = 0
    if len(raw) < _HEADER_SIZE:
        return False
    while offset < len(raw):
        header = raw[offset:offset + _HEADER_SIZE]
        if len(header) < _HEADER_SIZE:
            return False
        if header[0] not in _STREAM_TYPES or header[1:4] != b"\x00\x00\x00":
            return False
        offset += _HEADER_SIZE + int.from_bytes(header[4:], "big")
    return offset == len(raw)
