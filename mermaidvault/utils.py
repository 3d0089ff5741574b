import json
import re
from datetime import datetime, timezone

from .constants import DIAGRAM_FILE_EXTENSIONS


def now_iso():
    # Fixed microsecond width keeps lexical order equal to time order.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


_ws_re = re.compile(r"\s+")


def normalize_text(s):
    if s is None:
        return ""
    s = str(s).strip()
    s = _ws_re.sub(" ", s)
    return s


def json_dumps(obj):
    return json.dumps(obj, ensure_ascii=False)


def diagram_name_from_filename(filename):
    """Strip a trailing .mmd / .mermaid extension from an uploaded file name."""
    name = normalize_text(filename)
    lowered = name.lower()
    for ext in DIAGRAM_FILE_EXTENSIONS:
        if lowered.endswith(ext):
            return name[: -len(ext)]
    return name
