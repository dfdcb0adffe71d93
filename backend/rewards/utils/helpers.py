"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
import json
import re
from typing import Any, Optional

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str | None) -> Optional[dict[str, Any]]:
    """Return the JSON object embedded in free-form model output.

    Models sometimes wrap their answer in prose or Markdown fences. The
    outermost ``{...}`` span is parsed; ``None`` is returned when there
    is no such span or it is not a JSON object.
    """
    if not text:
        return None
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def start_of_utc_day(now: dt.datetime) -> dt.datetime:
    """Return midnight of ``now``'s UTC day as an aware UTC datetime.

    Naive input is taken to be UTC already.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    else:
        now = now.astimezone(dt.timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)
