from typing import Any, List, Optional
from datetime import timedelta


def str_list(str_list_raw: str) -> List[str]:
    """Convert string elements separated by comas into a list discarding empty strings"""
    return [elem.strip() for elem in str_list_raw.split(",") if elem.strip()]


def urljoin(*parts: str) -> str:
    if parts and parts[0].startswith("/"):
        prefix = "/"
    else:
        prefix = ""
    if parts and parts[-1].endswith("/"):
        suffix = "/"
    else:
        suffix = ""
    return prefix + "/".join(part.strip("/") for part in parts) + suffix


def timedelta_pretty(delta: timedelta) -> str:
    if delta == timedelta():
        return "0μs"
    out = []  # type: List[str]
    quot = abs(delta / timedelta.resolution)
    for div, unit in [
        (1000, "μs"),  # U+03BC
        (1000, "ms"),
        (60, "s"),
        (60, "m"),
        (24, "h"),
        (float("inf"), "d"),
    ]:
        quot, rem = divmod(quot, div)
        if rem > 0:
            out.append(format(rem, ".0f") + unit)
        if quot == 0:
            break
    if delta < timedelta():
        out.append("-")
    return "".join(reversed(out))


def format_table(
    orig_table: List[List[Any]], header: Optional[List[str]] = None, header_sep: str = "-"
) -> List[List[str]]:
    """
    Return table with every element converted to str and padded with spaces
    to the width of its column. Lists are joined with comas.
    """
    table = [
        [", ".join(map(str, elem)) if isinstance(elem, list) else str(elem) for elem in row]
        for row in orig_table
    ]
    if header:
        table.insert(0, list(header))
    widths = [max(len(row[col]) for row in table) for col in range(len(table[0]))]
    table = [[elem.ljust(width) for elem, width in zip(row, widths)] for row in table]
    if header:
        table.insert(1, [header_sep * width for width in widths])
    return table


def print_table(
    orig_table: List[List[Any]], header: List[str] = None, sep: str = " "
) -> None:
    """Prints matrix orig_table converting every element to string as table"""
    if not orig_table:
        return
    for row in format_table(orig_table, header):
        print(sep.join(row).rstrip())
