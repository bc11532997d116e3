"""PEM block parsing."""

import base64
import binascii
import re
from typing import Iterator, NamedTuple

PEM_BLOCK_RE = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)


class PEMBlock(NamedTuple):
    label: str
    der: bytes


def iter_pem_blocks(data: bytes | str) -> Iterator[PEMBlock]:
    """Yield the decoded blocks of a PEM document in order.

    Text outside BEGIN/END markers is ignored, as are blocks whose body is
    not valid base64.
    """
    if isinstance(data, bytes):
        data = data.decode("ascii", errors="ignore")

    for match in PEM_BLOCK_RE.finditer(data):
        body = "".join(match.group("body").split())
        try:
            der = base64.b64decode(body, validate=True)
        except binascii.Error:
            continue
        yield PEMBlock(match.group("label"), der)
