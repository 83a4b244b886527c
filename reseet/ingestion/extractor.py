"""
Extraction collaborator: turns receipt images and documents into loosely
typed JSON using a vision-language model.

The core treats every field of the result as untrusted; see
`IngestionPipeline.build_draft` for the defaulting rules.
"""

import base64
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

# Absolute imports for industrial stability
from reseet.config import Settings, load_settings
from reseet.errors import ExtractionFailed
from reseet.utils.logging_config import logger

RECEIPT_SCHEMA = """{
  "merchant": "store or business name",
  "date": "MMM DD, YYYY format",
  "category": "Food|Supplies|Travel|Fuel|General",
  "total": 0.00,
  "subtotal": 0.00,
  "tax": 0.00,
  "discount": 0.00,
  "tip": 0.00,
  "paymentMethod": "Cash|Credit Card|Debit Card|Mobile Payment|Other",
  "items": [
    {
      "description": "item name",
      "price": 0.00,
      "quantity": 1
    }
  ]
}"""

IMAGE_PROMPT = f"""Analyze this receipt image and extract ALL available information. Return ONLY valid JSON with no markdown formatting or code blocks:

{RECEIPT_SCHEMA}

Rules:
- Use exact category names: Food, Supplies, Travel, Fuel, or General
- Format date as "MMM DD, YYYY" (e.g., "Jan 15, 2024")
- All prices as numbers with 2 decimals
- Extract merchant name from top of receipt
- Look for discount/coupon amounts and include in "discount" field
- Look for tip, gratuity, or service charge and include in "tip" field
- Identify payment method from receipt (credit, debit, cash, etc.)
- If payment method not visible, omit the field
- If no discount or tip, set to 0.00
- If no items are clearly visible, create one item with subtotal amount
- Return ONLY the JSON object, no other text"""

HTML_PROMPT = """Analyze this HTML email receipt and extract ALL transaction details. Return ONLY valid JSON:

{schema}

HTML Content:
{html}

Rules:
- Extract merchant name from sender or header
- Find date in email content or headers
- Parse item list if present
- Extract total, subtotal, tax from HTML
- Identify payment method (last 4 digits, card type)
- Use exact category names: Food, Supplies, Travel, Fuel, or General
- Return ONLY JSON, no markdown"""

_CODE_FENCE_OPEN = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_CODE_FENCE_CLOSE = re.compile(r'\s*```\s*$')


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encodes raw bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_model_json(content: Optional[str]) -> Dict[str, Any]:
    """
    Parses the model's reply into a dict, tolerating markdown code fences.

    Raises:
        ExtractionFailed: if the reply is empty, not JSON, or not an object.
    """
    if not content or not content.strip():
        raise ExtractionFailed("Extraction returned an empty response")
    text = content.strip()
    if text.startswith('```'):
        text = _CODE_FENCE_CLOSE.sub('', _CODE_FENCE_OPEN.sub('', text))
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionFailed(f"Extraction returned unparseable content: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionFailed("Extraction returned JSON that is not an object")
    return data


class ReceiptExtractor(ABC):
    """
    Boundary to the vision/LLM receipt reader.

    Implementations return the raw JSON object and raise ExtractionFailed on
    any transport, timeout or parse error.
    """

    @abstractmethod
    async def extract_image(self, data: bytes, mime_type: str) -> Dict[str, Any]:
        """Extracts receipt fields from an image (or PDF) payload."""

    @abstractmethod
    async def extract_html(self, html: str) -> Dict[str, Any]:
        """Extracts receipt fields from an HTML email body."""


class OpenRouterExtractor(ReceiptExtractor):
    """
    Extractor backed by an OpenAI-compatible chat completions endpoint
    (OpenRouter by default) running a multimodal model.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, settings: Optional[Settings] = None):
        """
        Args:
            client: Pre-built async client. Built from settings when None.
            settings: Runtime settings; read from the environment when None.
        """
        self.settings = settings or load_settings()
        if client is None:
            if not self.settings.openrouter_api_key:
                raise ValueError("OPENROUTER_API_KEY is required")
            client = AsyncOpenAI(
                api_key=self.settings.openrouter_api_key,
                base_url=self.settings.extraction_base_url,
                timeout=self.settings.extraction_timeout,
            )
        self.client = client
        self.model = self.settings.extraction_model

    async def extract_image(self, data: bytes, mime_type: str) -> Dict[str, Any]:
        content = [
            {"type": "text", "text": IMAGE_PROMPT},
            {"type": "image_url", "image_url": {"url": to_data_url(data, mime_type)}},
        ]
        return await self._complete(content)

    async def extract_html(self, html: str) -> Dict[str, Any]:
        return await self._complete(HTML_PROMPT.format(schema=RECEIPT_SCHEMA, html=html))

    async def _complete(self, content: Any) -> Dict[str, Any]:
        logger.debug(f"Sending extraction request to {self.model}")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                temperature=0.1,
                max_tokens=2000,
            )
            reply = response.choices[0].message.content
        except Exception as e:
            # Transport errors and timeouts are all extraction failures to callers
            logger.error(f"Receipt extraction request failed: {e}")
            raise ExtractionFailed(f"Receipt extraction request failed: {e}") from e

        result = parse_model_json(reply)
        logger.info(f"Extracted receipt fields from model reply ({len(result)} keys)")
        return result
