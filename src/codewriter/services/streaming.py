import json
from typing import Any, AsyncIterator, Dict, Iterable

from starlette.concurrency import iterate_in_threadpool


def iter_as_async(it: Iterable[Dict[str, Any]]) -> AsyncIterator[Dict[str, Any]]:
    # Generator bodies block on upstream I/O, so they are pulled in the threadpool.
    return iterate_in_threadpool(iter(it))


def sse_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
