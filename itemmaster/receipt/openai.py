"""OpenAI chat-completions receipt scanner over plain HTTP."""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..models import ParsedReceipt
from . import ReceiptScanner, build_prompt, load_image, parse_receipt_response
from .errors import APIError, InvalidResponseFormat, InvalidURL, ScanConnectionError

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"


class OpenAIReceiptScanner(ReceiptScanner):
    """Read receipts with an OpenAI vision model (JSON-object response format)."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._endpoint = endpoint
        self._timeout = timeout
        self._http_client = http_client

    async def scan(
        self, image_path: str | Path, category_context: str = ""
    ) -> list[ParsedReceipt]:
        if not self._api_key:
            raise ValueError(
                "OpenAI API 密钥未设置。"
                "请检查配置文件或 OPENAI_API_KEY 环境变量。"
            )

        try:
            import httpx
        except ImportError:
            raise ImportError(
                "httpx is required: pip install 'itemmaster[openai]'"
            ) from None

        try:
            url = httpx.URL(self._endpoint)
        except httpx.InvalidURL as e:
            raise InvalidURL() from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidURL()

        data, media_type = load_image(image_path)
        image_b64 = base64.standard_b64encode(data).decode()

        payload = {
            "model": self._model,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": build_prompt(category_context)},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{media_type};base64,{image_b64}"},
                        }
                    ],
                },
            ],
            "max_completion_tokens": 1500,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("OpenAI API 连接失败: %s", e)
            raise ScanConnectionError() from e

        if response.status_code != 200:
            logger.error("OpenAI API Error: %s", response.text)
            raise APIError(response.status_code)

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise InvalidResponseFormat() from e
        if not isinstance(content, str):
            raise InvalidResponseFormat()

        items = parse_receipt_response(content)
        logger.info("识别到 %d 件商品", len(items))
        return items

