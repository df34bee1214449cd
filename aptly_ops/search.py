"""Search packages by name in aptly snapshots"""
import logging
import re
from typing import List, Pattern, Tuple
from aptly_ops.aptly import Client
from aptly_ops.exceptions import AptlyOpsError

log = logging.getLogger(__name__)

WILDCARD = "*"
# separates package name from version in "name_version_arch"
VERSION_SEPARATOR = "_"


class InvalidPattern(AptlyOpsError):
    """Pattern uses wildcards in a way that is not supported"""


def compile_pattern(pattern: str) -> Pattern:
    """
    Compile package name pattern into regex matched against "name_version_arch"
    package lines. Pattern is either an exact package name or a name prefix
    followed by a single trailing wildcard, e.g. "nginx" or "nginx*"
    """
    if not pattern:
        raise InvalidPattern("Pattern must not be empty")
    prefix = pattern[:-1] if pattern.endswith(WILDCARD) else pattern
    if WILDCARD in prefix or not prefix:
        raise InvalidPattern(
            f"Invalid pattern '{pattern}': only trailing wildcards (e.g. nginx*) are supported"
        )
    if pattern.endswith(WILDCARD):
        regex = r"^\s*{}[^\s{}]*{}".format(
            re.escape(prefix), VERSION_SEPARATOR, VERSION_SEPARATOR
        )
    else:
        regex = r"^\s*{}{}".format(re.escape(prefix), VERSION_SEPARATOR)
    return re.compile(regex)


def search(aptly: Client, pattern: str) -> List[Tuple[str, List[str]]]:
    """
    Search every snapshot for packages matching pattern.
    Returns list of tuples of snapshot name and matched package lines
    in the order snapshots are listed by aptly
    """
    regex = compile_pattern(pattern)
    result = []
    for snapshot in aptly.snapshot_list():
        packages = aptly.snapshot_packages(snapshot.name)
        matched = [line for line in packages if regex.search(line)]
        log.debug(
            "%s packages of %s in snapshot %s", len(matched), len(packages), snapshot.name
        )
        if matched:
            result.append((snapshot.name, matched))
    return result
