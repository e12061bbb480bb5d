"""
Receipt parsing with async calls to the Gemini API.
"""
import asyncio
import base64
import json
import logging
import re
from typing import Optional, Union

import aiohttp

from .config import (
    DEFAULT_CURRENCY,
    DEFAULT_TIP_PERCENTAGE,
    GEMINI_API_KEY,
    GEMINI_MODEL,
)
from .models import BillState, ParsedItem, ParseResult, Person, ReceiptItem, TipType

logger = logging.getLogger(__name__)

PROMPT = (
    "Analyze this receipt. Extract all purchasable items with their prices. "
    "Extract the total tax amount. If there is a 'Tip', 'Gratuity', or "
    "'Service Charge' explicitly included in the total, extract that amount "
    "as well. If tax or tip aren't explicitly separated, return 0 for them. "
    "Ignore dates, addresses, and card details. Return the data in JSON format."
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "items": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING", "description": "The name of the item"},
                    "price": {"type": "NUMBER", "description": "The price of the item"},
                },
                "required": ["name", "price"],
            },
        },
        "tax": {"type": "NUMBER", "description": "The total tax amount"},
        "tip": {"type": "NUMBER", "description": "The included tip or gratuity amount, if any"},
        "currency": {"type": "STRING", "description": "Currency symbol printed on the receipt"},
    },
    "required": ["items", "tax"],
}

_DATA_URL_PREFIX = re.compile(r"^data:image/(png|jpg|jpeg|webp);base64,")


class ReceiptParseError(Exception):
    """Raised when a receipt image cannot be turned into items."""


def encode_image(image: Union[bytes, str]) -> str:
    """Base64 payload for raw bytes or an already encoded string / data URL."""
    if isinstance(image, bytes):
        return base64.b64encode(image).decode("ascii")
    return _DATA_URL_PREFIX.sub("", image)


def parse_result_from_json(data: dict) -> ParseResult:
    """Build a ParseResult from the JSON the model returned."""
    try:
        items = [
            ParsedItem(name=str(i["name"]), price=float(i["price"]))
            for i in data.get("items", [])
        ]
        tip = data.get("tip")
        return ParseResult(
            items=items,
            tax=float(data.get("tax") or 0),
            tip=float(tip) if tip else None,
            currency=data.get("currency") or DEFAULT_CURRENCY,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ReceiptParseError(f"Unexpected receipt data: {e}") from e


class ReceiptParser:
    """
    Extracts items, tax and tip from a receipt photo.

    Talks to the Gemini generateContent REST endpoint and asks for a JSON
    response matching RESPONSE_SCHEMA.
    """

    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key: str = GEMINI_API_KEY, model: str = GEMINI_MODEL):
        self.api_key = api_key
        self.model = model

    def build_request(self, image: Union[bytes, str], mime_type: str = "image/jpeg") -> dict:
        return {
            "contents": [{
                "parts": [
                    {"inline_data": {"mime_type": mime_type, "data": encode_image(image)}},
                    {"text": PROMPT},
                ]
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    async def parse_receipt_image(
        self,
        image: Union[bytes, str],
        mime_type: str = "image/jpeg"
    ) -> ParseResult:
        """
        Send a receipt image to the model and parse its answer.

        Args:
            image: Raw image bytes, base64 string or data URL
            mime_type: MIME type of the image

        Returns:
            ParseResult with items, tax, tip and currency
        """
        if not self.api_key:
            raise ReceiptParseError("GEMINI_API_KEY is not configured")

        url = self.API_URL.format(model=self.model)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    params={"key": self.api_key},
                    json=self.build_request(image, mime_type)
                ) as response:
                    if response.status != 200:
                        logger.error("Receipt service returned %s", response.status)
                        raise ReceiptParseError(
                            f"Failed to parse receipt: {response.status}"
                        )
                    payload = await response.json()
        except aiohttp.ClientError as e:
            logger.error("Error parsing receipt: %s", e)
            raise ReceiptParseError(f"Receipt service unavailable: {e}") from e

        text = _response_text(payload)
        if not text:
            raise ReceiptParseError("Empty response from Gemini")

        try:
            data = json.loads(text)
        except ValueError as e:
            logger.error("Error parsing receipt: %s", e)
            raise ReceiptParseError("Receipt service returned invalid JSON") from e

        return parse_result_from_json(data)

    async def parse_receipt_file(self, path: str) -> ParseResult:
        """Read an image file and parse it."""
        mime_type = "image/png" if path.lower().endswith(".png") else "image/jpeg"
        with open(path, "rb") as f:
            image = f.read()
        return await self.parse_receipt_image(image, mime_type)


def _response_text(payload: dict) -> Optional[str]:
    try:
        parts = payload["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts) or None
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def bill_state_from_parse_result(
    result: ParseResult,
    people: Optional[list[Person]] = None
) -> BillState:
    """
    Seed a new bill from a parsed receipt.

    Items start unassigned. A tip read off the receipt is used as a fixed
    amount, otherwise the default tip percentage applies.
    """
    items = [ReceiptItem(name=i.name, price=i.price) for i in result.items]

    return BillState(
        items=items,
        tax=result.tax,
        tip_amount=result.tip or 0.0,
        tip_type=TipType.AMOUNT if result.tip else TipType.PERCENT,
        tip_from_receipt=bool(result.tip),
        tip_percentage=0.0 if result.tip else DEFAULT_TIP_PERCENTAGE,
        people=list(people) if people else [Person(name="Me")],
        currency=result.currency or DEFAULT_CURRENCY,
        cover_assignments={},
    )


def run_async(coro):
    """
    Helper to run async functions in sync context.

    Args:
        coro: Coroutine to run

    Returns:
        Result of coroutine
    """
    return asyncio.run(coro)
