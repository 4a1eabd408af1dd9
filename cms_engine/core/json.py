"""Custom JSON handling."""

from __future__ import annotations

import datetime
import json
from decimal import Decimal
from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse


class ContentJSONEncoder(json.JSONEncoder):
  """JSON encoder for the value types that appear in content rows."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, datetime.datetime):
      return obj.isoformat()
    if isinstance(obj, Enum):
      return obj.value
    if isinstance(obj, Decimal):
      return int(obj) if obj % 1 == 0 else float(obj)
    return super().default(obj)


class ContentJSONResponse(JSONResponse):
  """JSONResponse that renders compactly with ContentJSONEncoder."""

  def render(self, content: Any) -> bytes:
    return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"), cls=ContentJSONEncoder).encode("utf-8")
