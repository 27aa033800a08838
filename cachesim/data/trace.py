"""Parsing of memory traces and address/operation text.

Trace file format: one access per line, `<operation> <address>`:

    R 0x400000
    W 0x400004
    READ 0x400008
    WRITE 4194316

Blank lines and lines starting with '#' are skipped. Addresses are
hexadecimal with a 0x prefix or plain decimal; operations are READ/R or
WRITE/W in any case.
"""
from typing import Iterable, List, Optional, Tuple

from cachesim.core.address import ADDRESS_MASK
from cachesim.core.cache import Operation

Access = Tuple[int, Operation]

_OPERATIONS = {
    'R': Operation.READ,
    'READ': Operation.READ,
    'W': Operation.WRITE,
    'WRITE': Operation.WRITE,
}


class TraceFormatError(ValueError):
    def __init__(self, message: str, line_number: Optional[int] = None):
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


def parse_address(text: str) -> int:
    s = str(text).strip()
    try:
        if s[:2].lower() == '0x':
            value = int(s[2:], 16)
        else:
            value = int(s, 10)
    except ValueError:
        raise TraceFormatError(f"invalid address {text!r}") from None
    if value < 0 or value > ADDRESS_MASK:
        raise TraceFormatError(f"address {text!r} does not fit in 64 bits")
    return value


def parse_operation(text: str) -> Operation:
    op = _OPERATIONS.get(str(text).strip().upper())
    if op is None:
        raise TraceFormatError(f"unknown operation {text!r}")
    return op


def parse_trace(lines: Iterable[str]) -> List[Access]:
    accesses: List[Access] = []
    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        parts = line.split()
        if len(parts) < 2:
            raise TraceFormatError(f"expected '<operation> <address>', got {line!r}", line_number)
        try:
            accesses.append((parse_address(parts[1]), parse_operation(parts[0])))
        except TraceFormatError as e:
            raise TraceFormatError(str(e), line_number) from None
    return accesses


def load_trace(path: str) -> List[Access]:
    with open(path, 'r', encoding='utf-8') as fh:
        accesses = parse_trace(fh)
    if not accesses:
        raise TraceFormatError(f"no memory accesses found in trace file {path!r}")
    return accesses


def parse_access_list(addresses: str, operations: Optional[str] = None) -> List[Access]:
    """Parse comma-separated lists such as '0x0,0x20,64' and 'r,WRITE,read'.

    Missing operations default to READ.
    """
    addrs = [parse_address(a) for a in addresses.split(',') if a.strip()]
    ops = [parse_operation(o) for o in (operations or '').split(',') if o.strip()]
    if len(ops) > len(addrs):
        raise TraceFormatError(f"{len(ops)} operations given for {len(addrs)} addresses")
    ops += [Operation.READ] * (len(addrs) - len(ops))
    return list(zip(addrs, ops))
