"""
Pydantic models for the Gemini generateContent client protocol.

Only the request side is modelled; responses are built as plain dicts by the
converters. Every model allows extra fields so that newer Gemini CLI payloads
still validate.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def _coerce_args(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class GeminiFunctionCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    args: dict[str, Any] | None = None

    @field_validator("args", mode="before")
    @classmethod
    def _validate_args(cls, value: Any) -> dict[str, Any] | None:
        if value is None:
            return None
        return _coerce_args(value)


class GeminiFunctionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    response: dict[str, Any] | None = None


class GeminiBlob(BaseModel):
    model_config = ConfigDict(extra="allow")

    mimeType: str = "application/octet-stream"
    data: str = ""


class GeminiFileData(BaseModel):
    model_config = ConfigDict(extra="allow")

    mimeType: str | None = None
    fileUri: str = ""


class GeminiPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str | None = None
    thought: bool | None = None
    inlineData: GeminiBlob | None = None
    fileData: GeminiFileData | None = None
    functionCall: GeminiFunctionCall | None = None
    functionResponse: GeminiFunctionResponse | None = None


class GeminiContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    parts: list[GeminiPart] | None = None
    role: str | None = None


class GeminiFunctionDeclaration(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str | None = None
    parameters: dict[str, Any] | None = None
    parametersJsonSchema: dict[str, Any] | None = None


class GeminiTool(BaseModel):
    model_config = ConfigDict(extra="allow")

    functionDeclarations: list[GeminiFunctionDeclaration] | None = None


class GeminiToolConfigFunctionCallingConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    mode: str | None = None
    allowedFunctionNames: list[str] | None = None


class GeminiToolConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    functionCallingConfig: GeminiToolConfigFunctionCallingConfig | None = None


class GeminiGenerationConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    maxOutputTokens: int | None = None
    temperature: float | None = None
    topP: float | None = None
    topK: int | None = None
    stopSequences: list[str] | None = None


class GeminiGenerateContentRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    contents: list[GeminiContent] | None = None
    systemInstruction: GeminiContent | None = None
    generationConfig: GeminiGenerationConfig | None = None
    tools: list[GeminiTool] | None = None
    toolConfig: GeminiToolConfig | None = None

    @field_validator("systemInstruction", mode="before")
    @classmethod
    def _coerce_system_instruction(cls, value: Any) -> Any:
        # The CLI occasionally sends a bare string instead of a Content object.
        if isinstance(value, str):
            return {"parts": [{"text": value}]}
        return value


def parse_gemini_request(payload: dict[str, Any]) -> GeminiGenerateContentRequest:
    return GeminiGenerateContentRequest.model_validate(payload)
