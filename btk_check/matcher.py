# btk_check/matcher.py
"""Sentinel IP matching"""

from typing import Iterable, Optional, Tuple


def match_sentinel(
    addresses: Iterable[str], sentinels: Iterable[str]
) -> Tuple[bool, Optional[str]]:
    """
    Find the first resolved address that is a known block-page address

    Comparison is exact string equality, no address normalization or
    network ranges.

    Returns:
        (True, sentinel) for the first match in address order,
        (False, None) when nothing matches
    """
    sentinels = tuple(sentinels)
    for address in addresses:
        for sentinel in sentinels:
            if address == sentinel:
                return True, sentinel
    return False, None
