"""Byte-range expressions for ranged object downloads."""

from ociblob.errors import InvalidRangeError


def get_range(start: int, end: int) -> str:
    """Build the Range header value for a download.

    Cases, checked in order:

    - ``start == 0`` and ``end < 0``: the last ``-end`` bytes (``bytes=-N``).
    - ``start > 0`` and ``end == 0``: everything from ``start`` (``bytes=N-``).
    - ``0 <= start <= end``: ``start`` through ``end`` inclusive
      (``bytes=N-M``).

    Args:
        start: First byte offset.
        end: Last byte offset (inclusive), or a suffix length when negative.

    Returns:
        The Range header value.

    Raises:
        InvalidRangeError: For every other combination, e.g. ``bytes=5-3``
            or ``bytes=-3-``. Ranges are never clamped.
    """
    if start == 0 and end < 0:
        return f"bytes={end}"
    if start > 0 and end == 0:
        return f"bytes={start}-"
    if 0 <= start <= end:
        return f"bytes={start}-{end}"
    raise InvalidRangeError(start, end)


def check_read_range(offset: int, length: int) -> None:
    """Reject a Load request with a negative offset or length.

    Raises:
        InvalidRangeError: With the range the request would have covered.
    """
    if offset < 0 or length < 0:
        raise InvalidRangeError(offset, offset + length - 1 if length > 0 else 0)


def range_for_read(offset: int, length: int) -> str | None:
    """Map a Load request onto a Range header value.

    Args:
        offset: Byte offset to start reading from.
        length: Number of bytes to read, 0 meaning "to the end".

    Returns:
        The Range header value, or None when the whole object is wanted.

    Raises:
        InvalidRangeError: If offset or length is negative.
    """
    check_read_range(offset, length)
    if length > 0:
        return get_range(offset, offset + length - 1)
    if offset > 0:
        return get_range(offset, 0)
    return None
