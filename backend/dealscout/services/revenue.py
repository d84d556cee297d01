"""Revenue string heuristics shared by scoring, approval and queue listings."""
import re
from typing import Optional

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)")


def parse_revenue(value: Optional[str]) -> int:
    """Parse strings like "$25M", "1.2B" or "$750k" into whole dollars.

    Strips ``$`` and ``,``, reads the leading number, then scales by the first
    unit letter present anywhere in the string (b, then m, then k). Empty or
    non-numeric input yields 0.
    """
    if not value:
        return 0
    clean = str(value).lower().replace("$", "").replace(",", "")
    match = _LEADING_NUMBER.match(clean)
    if not match:
        return 0
    number = float(match.group(0))

    if "b" in clean:
        number *= 1_000_000_000
    elif "m" in clean:
        number *= 1_000_000
    elif "k" in clean:
        number *= 1_000
    return int(round(number))


def format_millions(amount: int, digits: int = 1) -> str:
    return f"${amount / 1_000_000:.{digits}f}M"
