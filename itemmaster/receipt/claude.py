"""Claude API receipt scanner."""

from __future__ import annotations

import base64
import logging
from pathlib import Path

from ..models import ParsedReceipt
from . import ReceiptScanner, build_prompt, load_image, parse_receipt_response
from .errors import APIError, InvalidResponseFormat, ScanConnectionError

logger = logging.getLogger(__name__)


class ClaudeReceiptScanner(ReceiptScanner):
    """Read receipts using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def scan(
        self, image_path: str | Path, category_context: str = ""
    ) -> list[ParsedReceipt]:
        if not self._api_key:
            raise ValueError(
                "Anthropic API 密钥未设置。"
                "请检查配置文件或 ANTHROPIC_API_KEY 环境变量。"
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install 'itemmaster[claude]'"
            ) from None

        data, media_type = load_image(image_path)
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": media_type,
                    "data": base64.standard_b64encode(data).decode(),
                },
            },
            {"type": "text", "text": build_prompt(category_context)},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=4096,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIStatusError as e:
            logger.error("Claude API Error: %s", e.message)
            raise APIError(e.status_code) from e
        except anthropic.APIConnectionError as e:
            logger.error("Claude API 连接失败: %s", e)
            raise ScanConnectionError() from e

        text = next(
            (b.text for b in response.content if b.type == "text"), None
        )
        if text is None:
            raise InvalidResponseFormat()
        items = parse_receipt_response(text)
        logger.info("识别到 %d 件商品", len(items))
        return items
