"""Replicate inference gateway with output decoding and error classification."""

import asyncio
import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Any, Union

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from animegen.services.exceptions import (
    InferenceError,
    InferenceRejectedError,
    InferenceUnavailableError,
    InvalidInferenceOutput,
)

DATA_URL_PREFIX = re.compile(r"^data:image/[^;]+;base64,")


@dataclass(frozen=True)
class StreamOutput:
    """Model returned a readable byte stream (file-like object)."""

    source: Any


@dataclass(frozen=True)
class InlineBase64Output:
    """Model returned a base64 string, possibly prefixed with a data-URL header."""

    data: str


InferenceOutput = Union[StreamOutput, InlineBase64Output]


def classify_output(output: Any) -> InferenceOutput:
    """Map a raw model response onto one of the two supported shapes.

    Accepted shapes:
        - bytes, or an object with read() (e.g. replicate FileOutput) -> StreamOutput
        - {"image": "<base64>"} or a "data:image/...;base64," string -> InlineBase64Output
        - a non-empty list of the above (first element is used)

    Raises:
        InvalidInferenceOutput: For any other shape
    """
    if isinstance(output, (list, tuple)):
        if not output:
            raise InvalidInferenceOutput("Invalid AI response format: empty output list")
        output = output[0]

    if isinstance(output, (bytes, bytearray)):
        return StreamOutput(io.BytesIO(bytes(output)))

    if hasattr(output, "read"):
        return StreamOutput(output)

    if isinstance(output, dict) and "image" in output:
        image_data = output["image"]
        if not isinstance(image_data, str):
            raise InvalidInferenceOutput("Invalid image data format in AI response")
        return InlineBase64Output(image_data)

    if isinstance(output, str) and output.startswith("data:"):
        return InlineBase64Output(output)

    raise InvalidInferenceOutput(f"Invalid AI response format: {type(output).__name__}")


def decode_output(output: InferenceOutput) -> bytes:
    """Decode a classified model response into raw image bytes.

    Raises:
        InvalidInferenceOutput: If the payload is empty or not valid base64
    """
    if isinstance(output, StreamOutput):
        data = output.source.read()
        if isinstance(data, str):
            raise InvalidInferenceOutput("Image stream returned text instead of bytes")
        data = bytes(data)
    else:
        payload = DATA_URL_PREFIX.sub("", output.data.strip())
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidInferenceOutput(f"Failed to decode base64 image: {e}") from e

    if not data:
        raise InvalidInferenceOutput("AI response contained an empty image")
    return data


def classify_error(exception: Exception) -> InferenceError:
    """Classify exception into retry category.

    Classification rules:
        - Timeout, 429, 503, connection errors -> InferenceUnavailableError
        - 401/403, content policy, other API errors -> InferenceRejectedError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower or isinstance(exception, TimeoutError):
        return InferenceUnavailableError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return InferenceUnavailableError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return InferenceUnavailableError(f"Service unavailable: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
    ):
        return InferenceRejectedError(f"Authentication failed: {error_message}")

    if "nsfw" in error_message_lower or "content policy" in error_message_lower:
        return InferenceRejectedError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return InferenceUnavailableError(f"Connection error: {error_message}")

    return InferenceRejectedError(f"Inference failed: {error_message}")


class ReplicateInferenceGateway:
    """Inference gateway backed by the Replicate SDK.

    The SDK is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, api_token: str):
        """Initialize gateway.

        Args:
            api_token: Replicate API token (from REPLICATE_API_TOKEN env var)
        """
        self.api_token = api_token
        self._client = replicate.Client(api_token=api_token) if api_token else None

    def _require_client(self) -> replicate.Client:
        if self._client is None:
            raise InferenceRejectedError("REPLICATE_API_TOKEN not configured")
        return self._client

    async def generate_image(self, model: str, payload: dict[str, Any]) -> bytes:
        """Run an image model and return the decoded image bytes.

        Args:
            model: Replicate model identifier
            payload: Model input

        Returns:
            Raw image bytes

        Raises:
            InvalidInferenceOutput: Response shape is not a stream or base64 payload
            InferenceUnavailableError: Temporary upstream failure
            InferenceRejectedError: Upstream refused the request
        """
        client = self._require_client()

        def _run() -> bytes:
            # Stream reads block too, so decoding happens in the same thread
            output = client.run(model, input=payload)
            return decode_output(classify_output(output))

        try:
            return await asyncio.to_thread(_run)
        except InferenceError:
            raise
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e

    async def complete_text(
        self, model: str, prompt: str, max_tokens: int = 100, temperature: float = 0.1
    ) -> str:
        """Run a language model and return its full text output."""
        client = self._require_client()

        def _run() -> str:
            output = client.run(
                model,
                input={"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature},
            )
            if isinstance(output, str):
                return output
            return "".join(str(chunk) for chunk in output)

        try:
            return await asyncio.to_thread(_run)
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
