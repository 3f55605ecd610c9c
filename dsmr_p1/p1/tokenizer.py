"""
Split a single line of a P1 telegram into its reference and values
"""

from typing import Tuple


def split_p1_line(line: str) -> Tuple[str, ...]:
    """
    Split a line of the form REFERENCE(value1)(value2)... into a tuple
    (REFERENCE, value1, value2, ...)

    The reference is everything before the first (. Every fragment after
    that is cut off at its first ), if it has one. A line without any (
    is returned as a tuple with only the reference in it.

    This never fails, malformed lines simply produce odd references or
    values which will not match anything later on.
    """

    reference, *remainder = line.split("(")

    values = []
    for fragment in remainder:
        index = fragment.find(")")
        if index != -1:
            fragment = fragment[:index]
        values.append(fragment)

    return (reference, *values)
