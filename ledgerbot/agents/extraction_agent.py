"""
Extraction Agent

Turns one freeform chat message into zero or more TransactionIntents by
asking the Gemini oracle for JSON and validating what comes back.

The oracle is untrusted. Its output goes through:

1. Payload location - strict `json.loads` of the whole reply first; if
   that fails, the substring between the first `{` and the last `}`
   (tolerates prose and code fences around the JSON).
2. Envelope validation - either `{"schema_version": 1, "intents": [...]}`
   or a single bare intent object; both become one list.
3. Per-intent validation - each intent is checked against a strict
   schema; invalid intents are dropped individually, the rest survive.

The agent never raises. Every failure becomes an ExtractionResult:
PARSE_FAILED for unusable output, RATE_LIMITED for quota errors.
"""

import json
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ledgerbot.config import GeminiSettings, get_settings
from ledgerbot.models.ledger import (
    EntryKind,
    EntryPatch,
    ExtractionResult,
    IntentAction,
    TransactionIntent,
)

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1

_CENTS = Decimal("0.01")


class OracleError(Exception):
    """The oracle call failed."""
    pass


class OracleRateLimitedError(OracleError):
    """The oracle reported quota or rate-limit exhaustion."""
    pass


# =============================================================================
# ORACLE WIRE SCHEMA (version 1)
# =============================================================================

def _parse_amount(value: Any) -> Any:
    """Accept numbers and numeric strings, including "R$ 25,50"."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.replace("R$", "").strip()
        if not text:
            return None
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            return Decimal(text)
        except InvalidOperation:
            return value
    return value


class OracleTransactionData(BaseModel):
    """The `data` object of one oracle intent."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    kind: Optional[EntryKind] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    transaction_date: Optional[date] = Field(default=None, alias="date")

    @field_validator("kind", "description", "category", "transaction_date", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return _parse_amount(v)

    @field_validator("amount")
    @classmethod
    def round_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return v.quantize(_CENTS) if v is not None else v


class OracleIntent(BaseModel):
    """One intent exactly as the oracle is asked to emit it."""
    model_config = ConfigDict(extra="ignore")

    action: IntentAction
    target_id: Optional[int] = Field(default=None, ge=1)
    search_amount: Optional[Decimal] = Field(default=None, gt=0)
    data: OracleTransactionData = Field(default_factory=OracleTransactionData)

    @field_validator("target_id", mode="before")
    @classmethod
    def strip_hash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lstrip("#") or None
        return v

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("search_amount", mode="before")
    @classmethod
    def coerce_search_amount(cls, v: Any) -> Any:
        return _parse_amount(v)

    @field_validator("search_amount")
    @classmethod
    def round_search_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return v.quantize(_CENTS) if v is not None else v

    @model_validator(mode="after")
    def create_needs_kind_and_amount(self) -> "OracleIntent":
        if self.action == IntentAction.CREATE:
            if self.data.kind is None:
                raise ValueError("create intent without kind")
            if self.data.amount is None:
                raise ValueError("create intent without amount")
        return self

    def to_intent(self, reference_date: date) -> TransactionIntent:
        transaction_date = self.data.transaction_date
        if transaction_date is None and self.action == IntentAction.CREATE:
            transaction_date = reference_date

        return TransactionIntent(
            action=self.action,
            target_id=self.target_id,
            search_amount=self.search_amount,
            patch=EntryPatch(
                kind=self.data.kind,
                amount=self.data.amount,
                description=self.data.description,
                category=self.data.category,
                transaction_date=transaction_date,
            ),
        )


# =============================================================================
# PARSING
# =============================================================================

def locate_json_payload(text: str) -> Optional[Any]:
    """
    Find the JSON payload in raw oracle text.

    Strict parse of the whole text first; then the first-`{`/last-`}`
    slice. A strict parse that is not an object (an array around the
    intent, a bare string) also falls back to the slice. Returns None if
    neither yields valid JSON.
    """
    if not text:
        return None

    try:
        payload = json.loads(text.strip())
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except ValueError:
        return None


def parse_oracle_output(text: str, reference_date: date) -> ExtractionResult:
    """
    Validate raw oracle text into an ExtractionResult.

    An explicit empty `intents` list is a valid, empty result. A payload
    from which no valid intent survives is PARSE_FAILED.
    """
    payload = locate_json_payload(text)
    if not isinstance(payload, dict):
        return ExtractionResult.parse_failed()

    if "intents" in payload:
        version = payload.get("schema_version", SCHEMA_VERSION)
        try:
            supported = int(version) == SCHEMA_VERSION
        except (TypeError, ValueError):
            supported = False
        if not supported:
            logger.warning("unsupported_oracle_schema", schema_version=version)
            return ExtractionResult.parse_failed()
        raw_intents = payload["intents"]
        if not isinstance(raw_intents, list):
            return ExtractionResult.parse_failed()
        if not raw_intents:
            return ExtractionResult.of([])
    else:
        raw_intents = [payload]

    intents = []
    for raw in raw_intents:
        try:
            intents.append(OracleIntent.model_validate(raw).to_intent(reference_date))
        except ValidationError as e:
            logger.info("oracle_intent_dropped", errors=e.error_count())

    if not intents:
        return ExtractionResult.parse_failed()
    return ExtractionResult.of(intents, dropped=len(raw_intents) - len(intents))


def is_rate_limit_error(error: Exception) -> bool:
    """Quota exhaustion as reported by the Gemini client (HTTP 429)."""
    if isinstance(
        error,
        (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests),
    ):
        return True
    message = str(error)
    return "429" in message or "RESOURCE_EXHAUSTED" in message


def build_extraction_prompt(text: str, reference_date: date) -> str:
    """Prompt embedding the message and the reference date."""
    return f"""You are a bookkeeper for a personal ledger kept over chat.
Today is {reference_date.isoformat()}. The user wrote: "{text}"

The message may be in any language (often Brazilian Portuguese) and may
describe one or several transactions.

TASK: classify every transaction in the message as CREATE or EDIT.

1. CREATE triggers: "spent", "paid", "bought", "received", "pix",
   "transferred" (gastei, paguei, comprei, recebi, transferi) or a bare amount.
2. EDIT triggers: "change", "fix", "edit", "was", "replace"
   (mudar, alterar, corrigir, editar, era, trocar).

EXTRACTION:
- "category X" or "tag X" -> category = X. Otherwise infer a short category.
- paid / spent / bought -> kind = "expense".
- received / earned -> kind = "income".
- Amounts are positive numbers with a dot as decimal separator.
- Dates are YYYY-MM-DD; resolve "yesterday" etc. against today.
- For EDIT: put the referenced entry number in target_id (e.g. "#12" -> 12).
  If the user refers to an entry by its amount, put that amount in
  search_amount. Put only the fields being changed in data.

Respond with ONLY a JSON object in this exact format:
{{"schema_version": {SCHEMA_VERSION}, "intents": [{{"action": "create"|"edit", "target_id": null|int, "search_amount": null|number, "data": {{"kind": "expense"|"income", "amount": 0.0, "description": "...", "category": "...", "date": "YYYY-MM-DD"}}}}]}}

If the message contains no transaction, respond with {{"schema_version": {SCHEMA_VERSION}, "intents": []}}."""


# =============================================================================
# AGENT
# =============================================================================

class ExtractionAgent:
    """
    Extraction contract over the Gemini oracle.

    BOUNDARIES:
    - NEVER persists data
    - NEVER raises to its caller
    - NEVER fills in amounts or kinds the oracle did not provide
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
    ):
        """
        Args:
            model: Any object with an async `generate_content_async(prompt)`
                   returning a response with `.text`. Defaults to a
                   configured Gemini model.
            settings: Gemini settings, used only when `model` is None.
        """
        if model is not None:
            self._model = model
        else:
            self._settings = settings or get_settings().gemini
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def generate(self, prompt: str) -> str:
        """
        Raw oracle round-trip.

        Raises:
            OracleRateLimitedError: On quota exhaustion
            OracleError: On any other failure, including blocked responses
        """
        try:
            response = await self._model.generate_content_async(prompt)
            return response.text
        except Exception as e:
            if is_rate_limit_error(e):
                raise OracleRateLimitedError(str(e)) from e
            raise OracleError(str(e)) from e

    async def extract(self, text: str, reference_date: date) -> ExtractionResult:
        prompt = build_extraction_prompt(text, reference_date)

        try:
            raw = await self.generate(prompt)
        except OracleRateLimitedError as e:
            logger.warning("oracle_rate_limited", error=str(e))
            return ExtractionResult.rate_limited()
        except OracleError as e:
            logger.error("oracle_call_failed", error=str(e))
            return ExtractionResult.parse_failed()

        result = parse_oracle_output(raw, reference_date)
        logger.info(
            "extraction_finished",
            status=result.status.value,
            intents=len(result.intents),
            dropped=result.dropped,
        )
        return result
