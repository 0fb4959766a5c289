from pydantic import BaseModel
from typing import Literal, Optional

from docling_poller.schema import ConversionResult


class CompletedTask(BaseModel):
    task_id: str
    attempts: int
    out_path: str
    result: ConversionResult


class CheckResult(BaseModel):
    name: str
    status: Literal["passed", "failed", "warning"]
    detail: str = ""

    # set by the conversion check
    task_id: Optional[str] = None
