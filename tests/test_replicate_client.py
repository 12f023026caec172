"""Inference gateway tests.

Tests cover:
- Output shape classification (stream vs. inline base64) and decoding
- Rejection of unknown output shapes
- Error classification into unavailable / rejected
- Gateway calls with a stubbed Replicate client
"""

import base64
import io

import pytest
from replicate.exceptions import ReplicateError

from animegen.services.exceptions import (
    InferenceRejectedError,
    InferenceUnavailableError,
    InvalidInferenceOutput,
)
from animegen.services.image_generation.replicate_client import (
    InlineBase64Output,
    ReplicateInferenceGateway,
    StreamOutput,
    classify_error,
    classify_output,
    decode_output,
)
from tests.helpers import PNG_BYTES

PNG_BASE64 = base64.b64encode(PNG_BYTES).decode("ascii")


class FileLike:
    """Mimics replicate's FileOutput: readable, not bytes."""

    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data


class StubReplicateClient:
    def __init__(self, output=None, error: Exception | None = None):
        self.output = output
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    def run(self, model, input):
        self.calls.append((model, input))
        if self.error is not None:
            raise self.error
        return self.output


def make_gateway(client: StubReplicateClient) -> ReplicateInferenceGateway:
    gateway = ReplicateInferenceGateway(api_token="")
    gateway._client = client  # type: ignore[assignment]
    return gateway


class TestClassifyOutput:
    def test_file_like_is_stream(self):
        result = classify_output(FileLike(PNG_BYTES))

        assert isinstance(result, StreamOutput)
        assert decode_output(result) == PNG_BYTES

    def test_raw_bytes_are_stream(self):
        result = classify_output(PNG_BYTES)

        assert isinstance(result, StreamOutput)
        assert decode_output(result) == PNG_BYTES

    def test_list_uses_first_element(self):
        result = classify_output([FileLike(PNG_BYTES), FileLike(b"other")])

        assert decode_output(result) == PNG_BYTES

    def test_image_field_is_inline_base64(self):
        result = classify_output({"image": PNG_BASE64})

        assert isinstance(result, InlineBase64Output)
        assert decode_output(result) == PNG_BYTES

    def test_data_url_prefix_is_stripped(self):
        """A data-URL header in front of the base64 payload is removed before decoding."""
        result = classify_output({"image": f"data:image/png;base64,{PNG_BASE64}"})

        assert decode_output(result) == PNG_BYTES

    def test_bare_data_url_string(self):
        result = classify_output(f"data:image/webp;base64,{PNG_BASE64}")

        assert decode_output(result) == PNG_BYTES

    @pytest.mark.parametrize(
        "output",
        [
            [],
            None,
            42,
            "https://example.com/image.png",
            {"url": "https://example.com/image.png"},
            {"image": 123},
        ],
    )
    def test_unknown_shapes_are_rejected(self, output):
        with pytest.raises(InvalidInferenceOutput):
            classify_output(output)

    def test_invalid_base64_is_rejected(self):
        with pytest.raises(InvalidInferenceOutput, match="decode base64"):
            decode_output(InlineBase64Output("not base64 at all!!"))

    def test_empty_image_is_rejected(self):
        with pytest.raises(InvalidInferenceOutput, match="empty image"):
            decode_output(StreamOutput(io.BytesIO(b"")))

    def test_text_stream_is_rejected(self):
        with pytest.raises(InvalidInferenceOutput):
            decode_output(StreamOutput(io.StringIO("hello")))


class TestClassifyError:
    @pytest.mark.parametrize(
        "message",
        ["Request timeout after 60s", "HTTP 429 Too Many Requests", "503 Service Unavailable"],
    )
    def test_unavailable(self, message):
        assert isinstance(classify_error(Exception(message)), InferenceUnavailableError)

    def test_connection_error_is_unavailable(self):
        assert isinstance(classify_error(ConnectionError("reset")), InferenceUnavailableError)

    @pytest.mark.parametrize(
        "message",
        ["401 Unauthorized", "403 Forbidden", "NSFW content detected", "Invalid input: steps"],
    )
    def test_rejected(self, message):
        assert isinstance(classify_error(Exception(message)), InferenceRejectedError)


class TestGateway:
    @pytest.mark.asyncio
    async def test_generate_image_returns_decoded_bytes(self):
        client = StubReplicateClient(output=[FileLike(PNG_BYTES)])
        gateway = make_gateway(client)

        data = await gateway.generate_image("owner/model", {"prompt": "anime girl"})

        assert data == PNG_BYTES
        assert client.calls == [("owner/model", {"prompt": "anime girl"})]

    @pytest.mark.asyncio
    async def test_generate_image_invalid_shape(self):
        gateway = make_gateway(StubReplicateClient(output={"url": "https://example.com"}))

        with pytest.raises(InvalidInferenceOutput, match="Invalid AI response format"):
            await gateway.generate_image("owner/model", {"prompt": "x"})

    @pytest.mark.asyncio
    async def test_generate_image_classifies_upstream_errors(self):
        gateway = make_gateway(StubReplicateClient(error=ReplicateError("503 Service Unavailable")))

        with pytest.raises(InferenceUnavailableError):
            await gateway.generate_image("owner/model", {"prompt": "x"})

    @pytest.mark.asyncio
    async def test_missing_token_is_rejected(self):
        gateway = ReplicateInferenceGateway(api_token="")

        with pytest.raises(InferenceRejectedError, match="REPLICATE_API_TOKEN"):
            await gateway.generate_image("owner/model", {"prompt": "x"})

    @pytest.mark.asyncio
    async def test_complete_text_joins_streamed_chunks(self):
        gateway = make_gateway(StubReplicateClient(output=iter(["anime, ", "blue hair"])))

        text = await gateway.complete_text("owner/llm", "prompt")

        assert text == "anime, blue hair"
