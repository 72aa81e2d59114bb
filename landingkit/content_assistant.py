from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json
import logging
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
import google.generativeai as genai

from landingkit.config import settings

logger = logging.getLogger(__name__)

FIELD_ACTIONS = ("generate", "improve", "shorten", "expand", "translate")
TONES = ("professional", "friendly", "urgent", "luxury")

SYSTEM_PROMPT = """You are an expert copywriter specialized in e-commerce landing pages.

CRITICAL RULES:
- NEVER mention brand names, product names, store names or e-commerce sites
- NEVER reference any specific brand, company or website
- Focus ONLY on product characteristics and features
- Keep content generic so it can be used for any similar product

IMPORTANT guidelines:
- ALWAYS write in fluent, natural English
- Use a persuasive but credible tone
- Include effective call-to-actions
- You can use basic HTML: <strong>, <em>, <br>
- For bullet points (fields with _bullets), separate with the | character
- Reviews must appear authentic with realistic names
- Emphasize BENEFITS, not just features
- Avoid generic phrases and cliches
- Create urgency without being aggressive"""

TONE_INSTRUCTIONS = {
    "professional": "Use a professional and authoritative tone, suitable for a demanding audience.",
    "friendly": "Use a friendly and conversational tone, as if talking to a friend.",
    "urgent": "Create a sense of urgency and scarcity, pushing for immediate action.",
    "luxury": "Use an elegant and sophisticated tone, emphasizing exclusivity and premium quality.",
}

_LANDING_FIELDS_TEMPLATE = """{
  "title": "Generic product title (NO brand names, max 60 chars)",
  "hero_overtitle": "Small text above hero title (e.g. 'New Arrival')",
  "hero_title": "Main hero section title, impactful (NO brand names)",
  "hero_subtitle": "Subtitle with HTML for emphasis (use <strong> to highlight)",
  "about_title": "About section title",
  "about_subtitle": "About subtitle",
  "scarcity_text": "Urgency text (e.g. 'Only 23 pieces left')",
  "cta_button_text": "CTA button text (e.g. 'Buy Now')",
  "sticky_cta_text": "Sticky CTA text (e.g. 'Order with free shipping')",
  "icon1_text": "Format: <strong>Keyword</strong>: brief benefit",
  "icon2_text": "Format: <strong>Keyword</strong>: brief benefit",
  "icon3_text": "Format: <strong>Keyword</strong>: brief benefit",
  "section1_overtitle": "DESIGN section overtitle",
  "section1_title": "DESIGN - about aesthetics, style, visual appeal",
  "section1_text": "DESIGN descriptive text (3-4 sentences). Use <strong> on 2-3 key words",
  "section1_bullets": "<strong>Keyword</strong>: description|<strong>Keyword</strong>: description",
  "section2_overtitle": "FIT & COMFORT section overtitle",
  "section2_title": "FIT & COMFORT - about fit, comfort, functionality",
  "section2_text": "FIT & COMFORT descriptive text (3-4 sentences). Use <strong> on 2-3 key words",
  "section2_bullets": "<strong>Keyword</strong>: description|<strong>Keyword</strong>: description",
  "section3_overtitle": "MATERIALS section overtitle",
  "section3_title": "MATERIALS - about fabric quality, materials, durability",
  "section3_text": "MATERIALS descriptive text (3-4 sentences). Use <strong> on 2-3 key words",
  "text_block_subtitle": "Text block subtitle",
  "text_block_description": "Very short text block description (1-2 sentences MAX)",
  "reviews_title": "Reviews section title (e.g. 'What our customers say')"{reviews}
}"""

_REVIEW_FIELDS_TEMPLATE = """,
  "review1_stars": "5",
  "review1_author": "First Last Name",
  "review1_text": "Authentic review (NO brand names)",
  "review2_stars": "5",
  "review2_author": "First Last Name",
  "review2_text": "Authentic review (NO brand names)",
  "review3_stars": "4",
  "review3_author": "First Last Name",
  "review3_text": "Authentic review (NO brand names)\""""

_FIELD_INSTRUCTIONS = {
    "hero_subtitle": "You can use HTML like <strong> for emphasis. Max 150 characters.",
    "section1_bullets": "Generate 3-4 bullet points separated by |",
    "section2_bullets": "Generate 3-4 bullet points separated by |",
    "review1_text": "Write an authentic review from a satisfied customer.",
    "review2_text": "Write an authentic review from a satisfied customer.",
    "review3_text": "Write an authentic review, can also have minor constructive criticism.",
}

PRODUCT_CONTENT_KEYS = (
    "title",
    "description",
    "bullet_1",
    "bullet_2",
    "bullet_3",
    "angle_1_title",
    "angle_1_text",
    "angle_2_title",
    "angle_2_text",
    "angle_3_title",
    "angle_3_text",
    "lifestyle_main_title",
    "lifestyle_left_title",
    "lifestyle_left_text",
    "lifestyle_right_title",
    "lifestyle_right_text",
)


class ContentErrorKind(str, Enum):
    SAFETY_BLOCKED = "SAFETY_BLOCKED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MALFORMED_OUTPUT = "MALFORMED_OUTPUT"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    GENERATION_FAILED = "GENERATION_FAILED"


_USER_MESSAGES = {
    ContentErrorKind.SAFETY_BLOCKED: "Content could not be generated for safety reasons. Try a different prompt.",
    ContentErrorKind.QUOTA_EXCEEDED: "AI usage limit reached. Try again in a few minutes.",
    ContentErrorKind.MALFORMED_OUTPUT: "The AI response could not be parsed. Try again.",
    ContentErrorKind.NOT_CONFIGURED: "GEMINI_API_KEY is not configured.",
    ContentErrorKind.GENERATION_FAILED: "Content generation failed. Try again.",
}


class ContentAssistantError(RuntimeError):
    def __init__(self, kind: ContentErrorKind, message: str | None = None, raw_text: str | None = None) -> None:
        super().__init__(message or _USER_MESSAGES[kind])
        self.kind = kind
        self.raw_text = raw_text


@dataclass
class GenerationOptions:
    tone: Optional[str] = None
    include_reviews: bool = True
    target_audience: Optional[str] = None


@dataclass
class ProductBrief:
    name: str
    category: str
    description: Optional[str] = None
    target_audience: Optional[str] = None
    style: Optional[str] = None


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned[:4].lower() == "json":
            cleaned = cleaned[4:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def extract_first_json_value(text: str) -> Any:
    """
    Parse the first top-level JSON object or array in a model response.

    Models often wrap JSON in prose or code fences. Raises ValueError when nothing
    parseable is found.
    """
    raw = strip_code_fences(text)
    if not raw:
        raise ValueError("Input text is empty")

    start: int | None = None
    stack: list[str] = []
    in_string = False
    escape = False
    closers = {"{": "}", "[": "]"}

    for i, ch in enumerate(raw):
        if start is None:
            if ch in closers:
                start = i
                stack = [closers[ch]]
            continue

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in closers:
            stack.append(closers[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
            if not stack:
                return json.loads(raw[start : i + 1])

    raise ValueError("Unable to locate a complete JSON value in response text")


def classify_error(exc: Exception) -> ContentErrorKind:
    if isinstance(exc, ContentAssistantError):
        return exc.kind
    if isinstance(exc, google_exceptions.ResourceExhausted):
        return ContentErrorKind.QUOTA_EXCEEDED
    message = str(exc).upper()
    if "SAFETY" in message:
        return ContentErrorKind.SAFETY_BLOCKED
    if "QUOTA" in message or "429" in message:
        return ContentErrorKind.QUOTA_EXCEEDED
    return ContentErrorKind.GENERATION_FAILED


class ContentAssistant:
    """Gemini-backed copywriting helpers for landing pages."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.timeout = timeout or settings.GEMINI_REQUEST_TIMEOUT_SECONDS
        self._configured = False

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _generate_text(self, prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        if not self.api_key:
            raise ContentAssistantError(ContentErrorKind.NOT_CONFIGURED)

        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True

        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        model_name = self.model if self.model.startswith("models/") else f"models/{self.model}"
        model_client = genai.GenerativeModel(model_name=model_name, generation_config=generation_config)
        try:
            result = model_client.generate_content(prompt, request_options={"timeout": self.timeout})
            text = None
            if result and getattr(result, "candidates", None):
                first = result.candidates[0]
                finish_reason = getattr(first, "finish_reason", None)
                if getattr(finish_reason, "name", finish_reason) == "SAFETY":
                    raise ContentAssistantError(ContentErrorKind.SAFETY_BLOCKED)
                if first and first.content and getattr(first.content, "parts", None):
                    parts = first.content.parts
                    if parts and getattr(parts[0], "text", None):
                        text = parts[0].text
            if not text and hasattr(result, "text"):
                text = result.text
        except ContentAssistantError:
            raise
        except Exception as exc:
            logger.exception("Gemini generation failed", extra={"model": self.model})
            raise ContentAssistantError(classify_error(exc)) from exc

        if text:
            return text
        raise ContentAssistantError(
            ContentErrorKind.GENERATION_FAILED,
            f"Gemini returned no content for model {self.model}",
        )

    def _generate_json(self, prompt: str, *, temperature: float, max_output_tokens: int) -> Any:
        text = self._generate_text(prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        try:
            return extract_first_json_value(text)
        except ValueError as exc:
            logger.warning("Gemini returned unparseable JSON", extra={"model": self.model})
            raise ContentAssistantError(ContentErrorKind.MALFORMED_OUTPUT, raw_text=text) from exc

    @staticmethod
    def _string_map(payload: Any, raw: str) -> dict[str, str]:
        if not isinstance(payload, dict):
            raise ContentAssistantError(ContentErrorKind.MALFORMED_OUTPUT, raw_text=raw)
        return {str(key): value if isinstance(value, str) else str(value) for key, value in payload.items()}

    def generate_landing_page_content(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
    ) -> dict[str, str]:
        options = options or GenerationOptions()
        tone_instruction = TONE_INSTRUCTIONS.get(options.tone or "", "")
        audience_instruction = f"Target: {options.target_audience}." if options.target_audience else ""
        fields = _LANDING_FIELDS_TEMPLATE.replace(
            "{reviews}",
            _REVIEW_FIELDS_TEMPLATE if options.include_reviews else "",
        )
        full_prompt = f"""{SYSTEM_PROMPT}

{prompt}

{tone_instruction}
{audience_instruction}

REMEMBER: NO brand names, NO product names, NO store names. Focus ONLY on features and characteristics.

Generate a complete landing page in English. Reply ONLY with valid JSON (no markdown code blocks) with these fields:

{fields}"""
        payload = self._generate_json(full_prompt, temperature=0.8, max_output_tokens=4096)
        return self._string_map(payload, json.dumps(payload))

    def assist_field(
        self,
        field_name: str,
        field_label: str,
        product_context: str,
        current_value: Optional[str],
        action: str,
    ) -> str:
        if action not in FIELD_ACTIONS:
            raise ValueError(f"Unsupported field action: {action}")
        if action != "generate" and not (current_value or "").strip():
            raise ValueError(f"Action '{action}' requires a current value")

        action_prompts = {
            "generate": f'Generate new content for the "{field_label}" field based on the product context.',
            "improve": f'Improve and make this text more persuasive: "{current_value}"',
            "shorten": f'Make this text more concise while keeping the key message: "{current_value}"',
            "expand": f'Expand and enrich this text with more details: "{current_value}"',
            "translate": f'Translate this text to English: "{current_value}"',
        }
        prompt = f"""{SYSTEM_PROMPT}

Product context: {product_context}

{action_prompts[action]}

{_FIELD_INSTRUCTIONS.get(field_name, "")}

IMPORTANT: Reply ONLY with the generated text, no quotes, explanations or extra formatting."""
        return self._generate_text(prompt, temperature=0.7, max_output_tokens=1024).strip()

    def generate_title_suggestions(self, description: str, count: int = 5) -> list[str]:
        prompt = f"""{SYSTEM_PROMPT}

Generate {count} catchy product titles for this product:
{description}

Reply ONLY with a JSON array of strings, no other text:
["Title 1", "Title 2", ...]"""
        payload = self._generate_json(prompt, temperature=0.9, max_output_tokens=512)
        if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
            raise ContentAssistantError(ContentErrorKind.MALFORMED_OUTPUT, raw_text=json.dumps(payload))
        return [item.strip() for item in payload if item.strip()][:count]

    def generate_product_content(self, brief: ProductBrief) -> dict[str, str]:
        base_description = f"- Base description: {brief.description}" if brief.description else ""
        keys = ",\n".join(f'  "{key}": "..."' for key in PRODUCT_CONTENT_KEYS)
        prompt = f"""You are a professional e-commerce copywriter. Generate compelling product content in English.

PRODUCT INFO:
- Category: {brief.category}
- Target: {brief.target_audience or "unisex"}
- Style: {brief.style or "casual"}
{base_description}

CRITICAL RULES:
- NEVER mention brand names, product names, store names or e-commerce sites
- Focus ONLY on product characteristics and features

GENERATE THE FOLLOWING CONTENT:
1. TITLE: a generic catchy product title (product type only)
2. DESCRIPTION: one short professional sentence
3. BULLETS: 3 bullets formatted "<strong>Keyword</strong>: brief description", one short line each
4. ANGLES, in this order: 1 DESIGN, 2 FIT & COMFORT, 3 MATERIALS. 3-4 sentences each, with <strong> on 2-3 key phrases
5. LIFESTYLE: an aspirational main title, a left side about occasions to wear it, and a right side about comfort and confidence

RESPOND IN THIS EXACT JSON FORMAT (no markdown, no code blocks, just raw JSON):
{{
{keys}
}}"""
        payload = self._generate_json(prompt, temperature=0.8, max_output_tokens=2048)
        content = self._string_map(payload, json.dumps(payload))
        missing = [key for key in PRODUCT_CONTENT_KEYS if not content.get(key)]
        if missing:
            raise ContentAssistantError(
                ContentErrorKind.MALFORMED_OUTPUT,
                f"AI response is missing fields: {', '.join(missing)}",
                raw_text=json.dumps(payload),
            )
        return content
