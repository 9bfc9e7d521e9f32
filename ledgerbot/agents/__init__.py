"""AI Agents package."""

from ledgerbot.agents.extraction_agent import (
    SCHEMA_VERSION,
    ExtractionAgent,
    OracleError,
    OracleIntent,
    OracleRateLimitedError,
    build_extraction_prompt,
    is_rate_limit_error,
    locate_json_payload,
    parse_oracle_output,
)

__all__ = [
    "SCHEMA_VERSION",
    "ExtractionAgent",
    "OracleError",
    "OracleIntent",
    "OracleRateLimitedError",
    "build_extraction_prompt",
    "is_rate_limit_error",
    "locate_json_payload",
    "parse_oracle_output",
]
