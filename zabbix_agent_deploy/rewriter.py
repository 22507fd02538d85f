"""
Configuration template rewriter
Fills value-less marker lines of an agent config template
"""

import logging
import re
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

HOST_INTERFACE = 'HostInterface='
HOSTNAME = 'Hostname='
SERVER = 'Server='
SERVER_ACTIVE = 'ServerActive='
HOST_METADATA = 'HostMetaData='

MARKERS = (HOST_INTERFACE, HOSTNAME, SERVER, SERVER_ACTIVE, HOST_METADATA)

LINE_ENDING = '\r\n'


class TemplateLine(NamedTuple):
    raw: str
    marker: Optional[str]


class ConfigTemplate:
    """Template lines, each tagged with the marker it is (if any)"""

    def __init__(self, lines: List[str]):
        self.lines = [TemplateLine(line, line if line in MARKERS else None) for line in lines]

    @classmethod
    def from_text(cls, text: str) -> 'ConfigTemplate':
        # Only LF / CRLF end a line; str.splitlines would also split on \f, \v, \x85 ...
        lines = re.split(r'\r?\n', text)
        if lines and lines[-1] == '':
            lines.pop()
        return cls(lines)

    @property
    def markers(self) -> List[str]:
        return [line.marker for line in self.lines if line.marker]

    def __len__(self):
        return len(self.lines)


class RenderedConfig:
    def __init__(self, lines: List[str], missing_markers: List[str]):
        self.lines = lines
        self.missing_markers = missing_markers

    @property
    def complete(self) -> bool:
        return not self.missing_markers

    def text(self) -> str:
        return LINE_ENDING.join(self.lines) + LINE_ENDING


def render(template: ConfigTemplate, assignment, interface_addr: str, host_name: str) -> RenderedConfig:
    """
    Append values to marker lines, pass every other line through.

    Only lines exactly equal to a marker are filled, so a line that
    already carries a value is never appended to twice.
    """
    values = {
        HOST_INTERFACE: interface_addr,
        HOSTNAME: host_name,
        SERVER: assignment.server,
        SERVER_ACTIVE: assignment.server_active,
        HOST_METADATA: assignment.host_metadata,
    }

    lines = [line.raw + values[line.marker] if line.marker else line.raw for line in template.lines]

    present = set(template.markers)
    missing = [marker for marker in MARKERS if marker not in present]
    if missing:
        logger.warning(
            f"⚠️  Template has no value-less line for {', '.join(missing)}; "
            f"those settings were not applied (template/agent version mismatch?)"
        )

    return RenderedConfig(lines, missing)
