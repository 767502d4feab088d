"""Receipt scanning failures, each with its own user-facing message."""

from __future__ import annotations


class ReceiptScanError(Exception):
    """Base class for scan failures. ``message`` is shown to the user as is."""

    default_message = "识别失败"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ImageProcessingFailed(ReceiptScanError):
    default_message = "无法处理图片"


class InvalidURL(ReceiptScanError):
    default_message = "无效的 API URL"


class APIError(ReceiptScanError):
    """The endpoint answered with a non-200 status."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"API 请求失败，错误码: {status_code}")


class InvalidResponseFormat(ReceiptScanError):
    default_message = "无法解析服务器返回的数据"


class ScanConnectionError(ReceiptScanError):
    """Network or TLS failure before any HTTP status was received."""

    default_message = "无法连接识别服务，请检查网络后重试"
