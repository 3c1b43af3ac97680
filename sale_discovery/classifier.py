"""
Classifier gateway for AI sale extraction.

Wraps the external extraction call behind one contract:

    text / URL / base64 image  ->  ExtractionResult

The gateway never raises. Transport failures, unparseable model output and
missing credentials all produce a zero-confidence result, so a flaky or
misconfigured provider degrades the cycle instead of aborting it.

Providers (CLASSIFIER_PROVIDER):
- gemini: Google Gemini generateContent REST API
- openai: OpenAI chat completions
- heuristic: local regex extractor, no credentials needed
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional
import requests
from bs4 import BeautifulSoup
from openai import OpenAI

from .config import ClassifierConfig, get_classifier_config
from .errors import ConfigurationError, ParseError, TransportError
from .models import CandidatePosting, ExtractionResult, SaleCategory

logger = logging.getLogger(__name__)


# =============================================================================
# PROMPTS
# =============================================================================

SALE_EXTRACTION_SCHEMA = """{
  "title": "short catchy title for the sale",
  "description": "brief description of what's on sale",
  "discountPercentage": number or null,
  "originalPrice": number or null,
  "salePrice": number or null,
  "category": "clothing|shoes|electronics|home_goods|beauty|sports|food|other",
  "products": ["list", "of", "specific", "products"],
  "storeName": "store/brand name if visible",
  "storeAddress": "address if mentioned",
  "expiryDate": "ISO date string if expiry mentioned, or null",
  "imageUrls": ["image urls if present"],
  "confidence": 0.0 to 1.0 (how confident you are this is a valid sale)
}"""

PROMPT_FOOTER = (
    'If this doesn\'t appear to be a sale/discount, return {"confidence": 0}.\n'
    "Support Hebrew text - translate descriptions to English but keep store names in original language."
)


def build_prompt(subject: str, content: Optional[str] = None) -> str:
    prompt = (
        f"Analyze this {subject} and extract sale/discount information.\n"
        f"Return ONLY valid JSON with this structure:\n{SALE_EXTRACTION_SCHEMA}\n"
        f"{PROMPT_FOOTER}"
    )
    if content:
        prompt += f"\n\nContent:\n{content}"
    return prompt


# =============================================================================
# DEFENSIVE RESPONSE PARSING
# =============================================================================

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?")


def parse_model_response(text: Optional[str]) -> ExtractionResult:
    """
    Extract an ExtractionResult from free-form model output.

    Tolerates prose around the JSON and markdown code fences. Tries the
    outermost {...} span first, then a raw decode at every '{'. Anything
    that does not yield a JSON object gives a zero-confidence result.
    """
    if not text or not isinstance(text, str):
        return ExtractionResult.zero(raw_text=text if isinstance(text, str) else None)

    cleaned = _CODE_FENCE_RE.sub("", text)

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return ExtractionResult.zero(raw_text=text)

    try:
        data = json.loads(cleaned[start:end + 1])
        if isinstance(data, dict):
            return ExtractionResult.from_dict(data, raw_text=text)
    except ValueError:
        pass

    decoder = json.JSONDecoder()
    position = start
    while position != -1:
        try:
            data, _ = decoder.raw_decode(cleaned, position)
            if isinstance(data, dict):
                return ExtractionResult.from_dict(data, raw_text=text)
        except ValueError:
            pass
        position = cleaned.find("{", position + 1)

    logger.debug("No JSON object found in model response")
    return ExtractionResult.zero(raw_text=text)


# =============================================================================
# PAGE HELPERS
# =============================================================================

def detect_platform(url: str) -> str:
    u = url.lower()
    if "instagram" in u or "instagr.am" in u:
        return "instagram"
    if "tiktok" in u:
        return "tiktok"
    if "facebook" in u or "fb.com" in u:
        return "facebook"
    if "twitter" in u or "x.com" in u:
        return "twitter"
    if "t.me" in u or "telegram" in u:
        return "telegram"
    if "wa.me" in u or "whatsapp" in u:
        return "whatsapp"
    return "web"


def extract_html_content(html: str) -> str:
    """Condense a page into title, OpenGraph tags, meta description and body text."""
    soup = BeautifulSoup(html, "html.parser")
    extracted = []

    if soup.title and soup.title.string:
        extracted.append(f"Title: {soup.title.string.strip()}")

    for tag in ("og:title", "og:description", "og:image", "og:site_name"):
        meta = soup.find("meta", attrs={"property": tag})
        if meta and meta.get("content"):
            extracted.append(f"{tag}: {meta['content']}")

    description = soup.find("meta", attrs={"name": "description"})
    if description and description.get("content"):
        extracted.append(f"Description: {description['content']}")

    if soup.body:
        for tag in soup.body(["script", "style"]):
            tag.decompose()
        body_text = re.sub(r"\s+", " ", soup.body.get_text(" ")).strip()[:2000]
        if body_text:
            extracted.append(f"Body: {body_text}")

    return "\n\n".join(extracted) or html[:3000]


# =============================================================================
# HEURISTIC EXTRACTOR
# =============================================================================

_DISCOUNT_PATTERNS = [
    re.compile(r"(\d+)\s*%\s*(?:off|discount|הנחה|חיסכון)", re.IGNORECASE),
    re.compile(r"(?:הנחה|discount|חיסכון)\s*(?:של|of)?\s*(\d+)\s*%", re.IGNORECASE),
]
_BARE_PERCENT_RE = re.compile(r"(\d+)\s*%")
_PRICE_RE = re.compile(r'(?:[$₪]\s*(\d[\d,.]*)|(\d[\d,.]*)\s*(?:ש"כ|שקלים|שקל|NIS|ILS|₪|\$))', re.IGNORECASE)

_CATEGORY_PATTERNS = [
    (SaleCategory.SHOES, re.compile(r"shoe|sneaker|boot|footwear|נעל|נעלי")),
    (SaleCategory.SPORTS, re.compile(r"fitness|gym|workout|training|כושר|גופני")),
    (SaleCategory.BEAUTY, re.compile(r"beauty|skin|hair|cosmetic|יופי|שפתיים")),
    (SaleCategory.FOOD, re.compile(r"food|meal|restaurant|pizza|grocery|אוכל|מסעדה|פיצה|שופרסל|רמי לוי")),
    (SaleCategory.ELECTRONICS, re.compile(r"laptop|phone|tablet|computer|electronic|gaming|מחשב|טלפון|אלקטרונ")),
    (SaleCategory.CLOTHING, re.compile(r"cloth|shirt|dress|jacket|fashion|apparel|בגד|חולצ|שמלה|אופנ")),
    (SaleCategory.HOME_GOODS, re.compile(r"home|furniture|kitchen|decor|בית|מטבח")),
]


def extract_sale_from_text(text: str) -> dict:
    """
    Regex extraction of discount, prices and category.

    Confidence is tiered on how much was found:
        discount + both prices  0.8
        discount + one price    0.7
        both prices             0.6
        discount only           0.5
        one price               0.35
        nothing                 0.0
    """
    discount = None
    for pattern in _DISCOUNT_PATTERNS:
        match = pattern.search(text)
        if match and 0 < int(match.group(1)) < 100:
            discount = int(match.group(1))
            break
    if discount is None:
        match = _BARE_PERCENT_RE.search(text)
        if match and 5 <= int(match.group(1)) < 100:
            discount = int(match.group(1))

    prices = []
    for match in _PRICE_RE.finditer(text):
        raw = (match.group(1) or match.group(2)).replace(",", "").rstrip(".")
        try:
            value = float(raw)
        except ValueError:
            continue
        if 0.99 < value < 100000:
            prices.append(value)

    original_price = sale_price = None
    if len(prices) >= 2:
        original_price, sale_price = max(prices), min(prices)
    elif len(prices) == 1:
        sale_price = prices[0]
        if discount:
            original_price = round(sale_price / (1 - discount / 100))

    lower_text = text.lower()
    category = SaleCategory.OTHER.value
    for candidate, pattern in _CATEGORY_PATTERNS:
        if pattern.search(lower_text):
            category = candidate.value
            break

    if discount and original_price and sale_price:
        confidence = 0.8
    elif discount and (original_price or sale_price):
        confidence = 0.7
    elif original_price and sale_price:
        confidence = 0.6
    elif discount:
        confidence = 0.5
    elif sale_price or original_price:
        confidence = 0.35
    else:
        confidence = 0.0

    collapsed = re.sub(r"\s+", " ", text).strip()
    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    return {
        "title": first_line[:120] or None,
        "description": collapsed[:400],
        "discountPercentage": discount,
        "originalPrice": original_price,
        "salePrice": sale_price,
        "category": category,
        "confidence": confidence,
    }


# =============================================================================
# PROVIDERS
# =============================================================================

class ExtractionProvider(ABC):
    """
    A model backend.

    generate() returns the model's raw text; parsing is the gateway's job.
    It may raise: the gateway turns every failure into zero confidence.
    """

    name: str

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    def generate(self, prompt: str, content: Optional[str] = None, image: Optional[tuple[str, str]] = None) -> str:
        """
        Args:
            prompt: Full prompt text (already contains content)
            content: Bare content, for providers that don't use prompts
            image: Optional (base64 data, mime type)
        """
        pass


class GeminiProvider(ExtractionProvider):
    """Google Gemini via the generateContent REST endpoint."""

    name = "gemini"
    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def generate(self, prompt: str, content: Optional[str] = None, image: Optional[tuple[str, str]] = None) -> str:
        parts = [{"text": prompt}]
        if image:
            data, mime_type = image
            parts.append({"inlineData": {"mimeType": mime_type, "data": data}})

        try:
            response = self.session.post(
                self.API_URL.format(model=self.model),
                params={"key": self.api_key},
                json={"contents": [{"parts": parts}]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise TransportError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            raise ParseError(f"Gemini returned non-JSON body: {e}") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(f"Unexpected Gemini response shape: {str(data)[:200]}") from e


class OpenAIProvider(ExtractionProvider):
    """OpenAI chat completions (vision-capable model for images)."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 30.0,
                 client: Optional[OpenAI] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def generate(self, prompt: str, content: Optional[str] = None, image: Optional[tuple[str, str]] = None) -> str:
        message_content = [{"type": "text", "text": prompt}]
        if image:
            data, mime_type = image
            message_content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{data}"},
            })

        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0.1,
            messages=[{"role": "user", "content": message_content}],
        )
        return response.choices[0].message.content or ""


class HeuristicProvider(ExtractionProvider):
    """Local regex extractor. Cannot read images."""

    name = "heuristic"

    def generate(self, prompt: str, content: Optional[str] = None, image: Optional[tuple[str, str]] = None) -> str:
        if image or not content:
            return json.dumps({"confidence": 0})
        return json.dumps(extract_sale_from_text(content), ensure_ascii=False)


def create_provider(config: ClassifierConfig) -> ExtractionProvider:
    """Build the provider selected by configuration."""
    if config.provider == "gemini":
        return GeminiProvider(config.gemini_api_key, config.gemini_model, config.timeout)
    if config.provider == "openai":
        return OpenAIProvider(config.openai_api_key, config.openai_model, config.timeout)
    if config.provider == "heuristic":
        return HeuristicProvider()
    raise ConfigurationError(f"Unknown classifier provider: {config.provider}")


# =============================================================================
# GATEWAY
# =============================================================================

class ClassifierGateway:
    """
    Never-raising front door to the extraction provider.

    Usage:
        gateway = ClassifierGateway()
        result = gateway.classify_text("מבצע 50% הנחה")
    """

    PAGE_HEADERS = {
        "User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15",
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "en-US,en;q=0.9,he;q=0.8",
    }

    def __init__(
        self,
        provider: Optional[ExtractionProvider] = None,
        config: Optional[ClassifierConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or get_classifier_config()
        self.session = session or requests.Session()

        if provider is None:
            try:
                provider = create_provider(self.config)
            except ConfigurationError as e:
                logger.error(f"Classifier disabled: {e}")
        self.provider = provider

        if self.provider is not None and not self.provider.configured:
            logger.warning(f"Classifier provider {self.provider.name} has no credentials - all results will be zero confidence")

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider else "none"

    def _run(self, prompt: str, content: Optional[str] = None, image: Optional[tuple[str, str]] = None) -> ExtractionResult:
        if self.provider is None or not self.provider.configured:
            return ExtractionResult.zero()

        try:
            text = self.provider.generate(prompt, content=content, image=image)
        except Exception as e:
            logger.warning(f"Classifier call failed ({self.provider_name}): {e}")
            return ExtractionResult.zero()

        return parse_model_response(text)

    def classify_text(self, text: str, source: str = "web", source_url: Optional[str] = None) -> ExtractionResult:
        """Classify a raw posting body."""
        if not text or not text.strip():
            return ExtractionResult.zero()
        content = text if not source_url else f"{text}\n\nSource: {source_url}"
        return self._run(build_prompt(f"{source} content", content), content=text)

    def classify_url(self, url: str) -> ExtractionResult:
        """Fetch a page and classify its condensed content."""
        platform = detect_platform(url)
        try:
            response = self.session.get(url, headers=self.PAGE_HEADERS, timeout=self.config.timeout)
            response.raise_for_status()
            content = extract_html_content(response.text)
        except Exception as e:
            logger.warning(f"Failed to fetch {url} for classification: {e}")
            return ExtractionResult.zero()

        return self._run(
            build_prompt(f"{platform} post content", f"Page content from {url}:\n{content}"),
            content=content,
        )

    def classify_image(self, base64_data: str, mime_type: str = "image/jpeg") -> ExtractionResult:
        """Classify a screenshot or photo of a sale."""
        if not base64_data:
            return ExtractionResult.zero()
        data = re.sub(r"^data:image/[\w.+-]+;base64,", "", base64_data)
        return self._run(build_prompt("image"), image=(data, mime_type))

    def classify_candidate(self, candidate: CandidatePosting) -> ExtractionResult:
        return self.classify_text(candidate.raw_content, source=candidate.source.value,
                                  source_url=candidate.source_url)
