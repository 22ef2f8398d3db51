import time
import uuid
from dataclasses import dataclass, field


def new_request_id() -> str:
    return f"req-{uuid.uuid4().hex}"


@dataclass
class RequestContext:
    request_id: str = field(default_factory=new_request_id)
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def metadata(self) -> dict:
        return {"request_id": self.request_id, "execution_time": self.elapsed_ms()}
