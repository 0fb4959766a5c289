from typing import Any, Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

SUCCESS = "success"
FAILURE = "failure"
TERMINAL_STATUSES = {SUCCESS, FAILURE}
# "started" is what the service reports while a task is running
KNOWN_STATUSES = {"pending", "started", SUCCESS, FAILURE}


class TaskStatusResponse(BaseModel):
    # a blank status is as unusable as a missing one
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    task_status: str = Field(..., min_length=1)
    task_id: str | None = None
    task_type: str | None = None
    task_position: int | None = None
    task_meta: dict[str, Any] | None = None

    # body exactly as the service sent it
    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "TaskStatusResponse":
        status = cls.model_validate(body)
        status._raw = dict(body)
        return status

    @property
    def raw(self) -> dict[str, Any]:
        return self._raw or self.model_dump(exclude_unset=True)

    @property
    def is_terminal(self) -> bool:
        return self.task_status in TERMINAL_STATUSES


class Chunk(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversionResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    chunks: list[Chunk] = Field(default_factory=list)


class HttpSource(BaseModel):
    kind: Literal["http"] = "http"
    url: str = Field(..., min_length=1)


class FileSource(BaseModel):
    kind: Literal["file"] = "file"
    base64_string: str
    filename: str = Field(..., min_length=1)


Source = Annotated[Union[HttpSource, FileSource], Field(discriminator="kind")]


def default_options() -> dict[str, Any]:
    return {"to_formats": ["json", "text"]}


class ConvertSourcesRequest(BaseModel):
    sources: list[Source] = Field(..., min_length=1)
    options: dict[str, Any] = Field(default_factory=default_options)


class TaskSubmission(BaseModel):
    model_config = ConfigDict(extra="allow")

    task_id: str = Field(..., min_length=1)
    task_status: str | None = None
