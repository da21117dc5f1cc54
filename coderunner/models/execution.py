"""Pydantic models for the execution API and the WebSocket protocol."""

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter


class CompileRequest(BaseModel):
    """Body of POST /compile/{language}."""

    code: str = Field(validation_alias=AliasChoices("code", "sourceCode"))


class CompileResponse(BaseModel):
    output: str


class LanguagesResponse(BaseModel):
    languages: list[str]


class HealthResponse(BaseModel):
    status: str
    docker: str
    timestamp: str


class ExecutionRecord(BaseModel):
    """One entry of the recent executions log."""

    timestamp: str
    language: str
    code_hash: str
    phase: str
    error: str | None = None
    duration_ms: int


class ExecutionsResponse(BaseModel):
    count: int
    executions: list[ExecutionRecord]


# WebSocket messages


class RunMessage(BaseModel):
    """Start a run on this connection."""

    type: Literal["run", "execute"]
    language: str
    code: str = Field(validation_alias=AliasChoices("code", "sourceCode"))


class StdinMessage(BaseModel):
    """A line of input for the running program (a newline is appended)."""

    type: Literal["stdin"]
    input: str = Field(default="", validation_alias=AliasChoices("input", "inputText"))


InboundMessage = Annotated[Union[RunMessage, StdinMessage], Field(discriminator="type")]
inbound_adapter: TypeAdapter[Any] = TypeAdapter(InboundMessage)


class OutboundMessage(BaseModel):
    type: Literal["output", "error", "complete"]
    data: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
