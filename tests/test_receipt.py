"""Tests for receipt scanners (mocked API calls)."""

import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from itemmaster.config import load_config
from itemmaster.models import Category, Subcategory
from itemmaster.receipt import (
    APIError,
    ImageProcessingFailed,
    InvalidResponseFormat,
    InvalidURL,
    ScanConnectionError,
    build_prompt,
    create_scanner,
    describe_categories,
    load_image,
    parse_receipt_response,
)
from itemmaster.receipt.claude import ClaudeReceiptScanner
from itemmaster.receipt.openai import OpenAIReceiptScanner

RECEIPT_JSON = json.dumps({
    "items": [
        {
            "name": "全脂鲜牛奶",
            "brand": "光明",
            "unitPriceString": "12.50",
            "quantity": 2,
            "matchedCategoryName": "食物",
            "matchedSubcategoryName": None,
            "tagNames": ["Taobao"],
            "notes": None,
            "acquiredDateString": "2025-03-01",
        },
        {"name": "纸巾", "unitPriceString": "9.9", "quantity": 1},
    ]
}, ensure_ascii=False)


@pytest.fixture
def receipt_image(tmp_path):
    img = tmp_path / "receipt.jpg"
    img.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return img


class TestCreateScanner:
    def test_default_is_openai(self):
        assert isinstance(create_scanner(load_config()), OpenAIReceiptScanner)

    def test_create_claude_scanner(self):
        config = load_config()
        config.scanner.backend = "claude"
        assert isinstance(create_scanner(config), ClaudeReceiptScanner)

    def test_create_unknown_scanner(self):
        config = load_config()
        config.scanner.backend = "unknown"
        with pytest.raises(ValueError, match="未知的识别后端"):
            create_scanner(config)


class TestDescribeCategories:
    def test_tree_text(self):
        food = Category(name="食物", sort_order=0)
        food.subcategories = [
            Subcategory(name="蔬菜", category_id=food.id, sort_order=1),
            Subcategory(name="零食", category_id=food.id, sort_order=0),
        ]
        daily = Category(name="日用品", sort_order=1)
        assert describe_categories([daily, food]) == "食物(零食, 蔬菜); 日用品"

    def test_prompt_includes_tree(self):
        assert "[食物(零食); 日用品]" in build_prompt("食物(零食); 日用品")


class TestParseReceiptResponse:
    def test_items_wrapper(self):
        result = parse_receipt_response(RECEIPT_JSON)
        assert len(result) == 2
        milk = result[0]
        assert milk.name == "全脂鲜牛奶"
        assert milk.unit_price_string == "12.50"
        assert milk.quantity == 2.0
        assert milk.matched_category_name == "食物"
        assert milk.matched_subcategory_name is None
        assert milk.acquired_date_string == "2025-03-01"

    def test_brand_appended_to_tags(self):
        milk = parse_receipt_response(RECEIPT_JSON)[0]
        assert milk.tag_names == ["Taobao", "光明"]

    def test_brand_not_duplicated(self):
        text = json.dumps({"items": [{"name": "x", "brand": "Apple", "tagNames": ["APPLE"]}]})
        assert parse_receipt_response(text)[0].tag_names == ["APPLE"]

    def test_bare_array(self):
        text = json.dumps([{"name": "毛巾"}], ensure_ascii=False)
        assert parse_receipt_response(text)[0].name == "毛巾"

    def test_markdown_fences(self):
        text = "```json\n" + RECEIPT_JSON + "\n```"
        assert len(parse_receipt_response(text)) == 2

    def test_lenient_field_types(self):
        text = json.dumps({"items": [
            {"name": "x", "unitPriceString": 19.9, "quantity": "1/2", "tagNames": "eBay"},
            {"name": "y", "quantity": "many"},
        ]})
        first, second = parse_receipt_response(text)
        assert first.unit_price_string == "19.9"
        assert first.quantity == 0.5
        assert first.tag_names == []
        assert second.quantity is None

    @pytest.mark.parametrize(
        "text",
        ["not json", '{"items": "nope"}', '{"other": []}', "[1, 2]", '"text"'],
    )
    def test_invalid_shapes(self, text):
        with pytest.raises(InvalidResponseFormat):
            parse_receipt_response(text)


class TestLoadImage:
    def test_jpeg(self, receipt_image):
        data, media_type = load_image(receipt_image)
        assert data.startswith(b"\xff\xd8")
        assert media_type == "image/jpeg"

    def test_png_media_type(self, tmp_path):
        img = tmp_path / "shot.png"
        img.write_bytes(b"\x89PNG")
        assert load_image(img)[1] == "image/png"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ImageProcessingFailed, match="无法处理图片"):
            load_image(tmp_path / "missing.jpg")

    def test_empty_file(self, tmp_path):
        img = tmp_path / "empty.jpg"
        img.write_bytes(b"")
        with pytest.raises(ImageProcessingFailed):
            load_image(img)

    def test_not_an_image(self, tmp_path):
        doc = tmp_path / "receipt.txt"
        doc.write_text("hello")
        with pytest.raises(ImageProcessingFailed):
            load_image(doc)


def _chat_response(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestOpenAIReceiptScanner:
    @pytest.mark.asyncio
    async def test_scan_requires_api_key(self):
        scanner = OpenAIReceiptScanner(api_key="")
        with pytest.raises(ValueError, match="API 密钥"):
            await scanner.scan("/tmp/receipt.jpg")

    @pytest.mark.asyncio
    async def test_scan_mocked(self, receipt_image):
        """Posts the image and category tree and parses the JSON reply."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=_chat_response(RECEIPT_JSON))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            scanner = OpenAIReceiptScanner(api_key="test-key", http_client=client)
            result = await scanner.scan(receipt_image, "食物(零食); 日用品")

        assert [r.name for r in result] == ["全脂鲜牛奶", "纸巾"]
        assert seen["auth"] == "Bearer test-key"
        payload = seen["payload"]
        assert payload["model"] == "gpt-4o"
        assert payload["response_format"] == {"type": "json_object"}
        assert "食物(零食); 日用品" in payload["messages"][0]["content"]
        image_url = payload["messages"][1]["content"][0]["image_url"]["url"]
        assert image_url.startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_non_200_raises_api_error(self, receipt_image):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            scanner = OpenAIReceiptScanner(api_key="test-key", http_client=client)
            with pytest.raises(APIError) as exc:
                await scanner.scan(receipt_image)

        assert exc.value.status_code == 401
        assert exc.value.message == "API 请求失败，错误码: 401"

    @pytest.mark.asyncio
    async def test_network_failure(self, receipt_image):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            scanner = OpenAIReceiptScanner(api_key="test-key", http_client=client)
            with pytest.raises(ScanConnectionError):
                await scanner.scan(receipt_image)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{"choices": []}, {"unexpected": True}, _chat_response("not json")],
    )
    async def test_malformed_body(self, receipt_image, body):
        def handler(request):
            return httpx.Response(200, json=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            scanner = OpenAIReceiptScanner(api_key="test-key", http_client=client)
            with pytest.raises(InvalidResponseFormat, match="无法解析"):
                await scanner.scan(receipt_image)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("endpoint", ["not a url", "ftp://example.com/v1", "http://"])
    async def test_invalid_endpoint(self, receipt_image, endpoint):
        scanner = OpenAIReceiptScanner(api_key="test-key", endpoint=endpoint)
        with pytest.raises(InvalidURL):
            await scanner.scan(receipt_image)


class _FakeStatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class _FakeConnectionError(Exception):
    pass


def _mock_anthropic(create):
    mock_client = AsyncMock()
    mock_client.messages.create = create
    mock_anthropic = MagicMock()
    mock_anthropic.AsyncAnthropic.return_value = mock_client
    mock_anthropic.APIStatusError = _FakeStatusError
    mock_anthropic.APIConnectionError = _FakeConnectionError
    return mock_anthropic


class TestClaudeReceiptScanner:
    @pytest.mark.asyncio
    async def test_scan_requires_api_key(self):
        scanner = ClaudeReceiptScanner(api_key="")
        with pytest.raises(ValueError, match="API 密钥"):
            await scanner.scan("/tmp/receipt.jpg")

    @pytest.mark.asyncio
    async def test_scan_mocked(self, receipt_image):
        """Test Claude scanner with mocked API call."""
        mock_response = MagicMock()
        mock_response.content = [MagicMock(type="text", text=RECEIPT_JSON)]
        create = AsyncMock(return_value=mock_response)

        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            result = await scanner.scan(receipt_image, "食物; 日用品")

        assert len(result) == 2
        assert result[0].tag_names == ["Taobao", "光明"]
        content = create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["source"]["media_type"] == "image/jpeg"
        assert "食物; 日用品" in content[1]["text"]

    @pytest.mark.asyncio
    async def test_status_error_mapped(self, receipt_image):
        create = AsyncMock(side_effect=_FakeStatusError("overloaded", 529))
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            with pytest.raises(APIError) as exc:
                await scanner.scan(receipt_image)
        assert exc.value.status_code == 529

    @pytest.mark.asyncio
    async def test_connection_error_mapped(self, receipt_image):
        create = AsyncMock(side_effect=_FakeConnectionError("offline"))
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            with pytest.raises(ScanConnectionError):
                await scanner.scan(receipt_image)

    @pytest.mark.asyncio
    async def test_skips_non_text_blocks(self, receipt_image):
        mock_response = MagicMock()
        mock_response.content = [
            MagicMock(type="thinking", spec=["type", "thinking"]),
            MagicMock(type="text", text=RECEIPT_JSON),
        ]
        create = AsyncMock(return_value=mock_response)
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            result = await scanner.scan(receipt_image)
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_no_text_block(self, receipt_image):
        mock_response = MagicMock()
        mock_response.content = [MagicMock(type="tool_use", spec=["type", "input"])]
        create = AsyncMock(return_value=mock_response)
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            with pytest.raises(InvalidResponseFormat):
                await scanner.scan(receipt_image)

    @pytest.mark.asyncio
    async def test_empty_content(self, receipt_image):
        mock_response = MagicMock()
        mock_response.content = []
        create = AsyncMock(return_value=mock_response)
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            scanner = ClaudeReceiptScanner(api_key="test-key")
            with pytest.raises(InvalidResponseFormat):
                await scanner.scan(receipt_image)
