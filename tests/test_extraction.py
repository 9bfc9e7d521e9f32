"""Tests for the extraction contract over the oracle."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import FakeModel
from ledgerbot.agents import (
    ExtractionAgent,
    OracleError,
    OracleRateLimitedError,
    build_extraction_prompt,
    is_rate_limit_error,
    locate_json_payload,
    parse_oracle_output,
)
from ledgerbot.models.ledger import EntryKind, ExtractionStatus, IntentAction

TODAY = date(2024, 3, 10)


def _create(amount=25.5, kind="expense", **data):
    return {
        "action": "create",
        "target_id": None,
        "search_amount": None,
        "data": {"kind": kind, "amount": amount, **data},
    }


class TestLocateJsonPayload:

    def test_strict_json(self):
        assert locate_json_payload('{"a": 1}') == {"a": 1}

    def test_json_inside_code_fence(self):
        text = 'Sure!\n```json\n{"a": {"b": 2}}\n```'
        assert locate_json_payload(text) == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["", "no json here", "} backwards {", '{"a": '])
    def test_unusable_text(self, text):
        assert locate_json_payload(text) is None

    def test_array_around_object_falls_back_to_slice(self):
        assert locate_json_payload('[{"a": 1}]') == {"a": 1}


class TestParseOracleOutput:

    def test_envelope_with_one_create(self):
        text = '{"schema_version": 1, "intents": [%s]}' % (
            '{"action": "create", "data": {"kind": "expense", "amount": 25.5, '
            '"description": "lunch", "category": "food"}}'
        )
        result = parse_oracle_output(text, TODAY)

        assert result.status == ExtractionStatus.INTENTS
        assert len(result.intents) == 1
        intent = result.intents[0]
        assert intent.action == IntentAction.CREATE
        assert intent.patch.kind == EntryKind.EXPENSE
        assert intent.patch.amount == Decimal("25.50")
        assert intent.patch.transaction_date == TODAY

    def test_bare_single_object_is_accepted(self):
        text = '{"action": "create", "data": {"kind": "income", "amount": "1500,00"}}'
        result = parse_oracle_output(text, TODAY)
        assert result.status == ExtractionStatus.INTENTS
        assert result.intents[0].patch.amount == Decimal("1500.00")

    def test_explicit_empty_list_is_valid(self):
        result = parse_oracle_output('{"schema_version": 1, "intents": []}', TODAY)
        assert result.status == ExtractionStatus.INTENTS
        assert result.intents == []

    def test_garbage_is_parse_failed(self):
        assert parse_oracle_output("I'm not sure", TODAY).status == ExtractionStatus.PARSE_FAILED
        assert parse_oracle_output("[1, 2]", TODAY).status == ExtractionStatus.PARSE_FAILED

    def test_unknown_schema_version_is_parse_failed(self):
        text = '{"schema_version": 2, "intents": []}'
        assert parse_oracle_output(text, TODAY).status == ExtractionStatus.PARSE_FAILED

    def test_intent_wrapped_in_array_is_recovered(self):
        text = json.dumps([_create(amount=12, description="bread")])
        result = parse_oracle_output(text, TODAY)

        assert result.status == ExtractionStatus.INTENTS
        assert result.intents[0].patch.amount == Decimal("12.00")
        assert result.intents[0].patch.description == "bread"

    def test_prose_around_bare_object(self):
        text = "Here you go: %s Let me know if anything else." % json.dumps(_create(amount=7))
        result = parse_oracle_output(text, TODAY)

        assert result.status == ExtractionStatus.INTENTS
        assert result.intents[0].patch.amount == Decimal("7.00")

    def test_schema_version_as_string(self):
        text = json.dumps({"schema_version": "1", "intents": [_create(amount=3)]})
        result = parse_oracle_output(text, TODAY)

        assert result.status == ExtractionStatus.INTENTS
        assert len(result.intents) == 1

    @pytest.mark.parametrize("version", ["one", None, [1]])
    def test_non_numeric_schema_version_is_parse_failed(self, version):
        text = json.dumps({"schema_version": version, "intents": [_create()]})
        assert parse_oracle_output(text, TODAY).status == ExtractionStatus.PARSE_FAILED

    def test_invalid_intents_are_dropped_individually(self):
        text = json.dumps({"schema_version": 1, "intents": [
            _create(amount=10),
            _create(amount=-3),
            _create(amount=0),
            {"action": "create", "data": {"amount": 5}},
            {"action": "delete", "data": {}},
            _create(amount=20, kind="income"),
        ]})
        result = parse_oracle_output(text, TODAY)

        assert result.status == ExtractionStatus.INTENTS
        assert [i.patch.amount for i in result.intents] == [Decimal("10.00"), Decimal("20.00")]
        assert result.dropped == 4

    def test_all_invalid_is_parse_failed(self):
        text = '{"schema_version": 1, "intents": [{"action": "create", "data": null}]}'
        assert parse_oracle_output(text, TODAY).status == ExtractionStatus.PARSE_FAILED

    def test_edit_by_id_keeps_only_mentioned_fields(self):
        text = (
            '{"intents": [{"action": "edit", "target_id": "#12", '
            '"data": {"category": "market", "amount": null, "description": ""}}]}'
        )
        result = parse_oracle_output(text, TODAY)

        intent = result.intents[0]
        assert intent.action == IntentAction.EDIT
        assert intent.target_id == 12
        assert intent.patch.changes() == {"category": "market"}

    def test_edit_by_amount(self):
        text = '{"intents": [{"action": "edit", "search_amount": "50,00", "data": {"amount": 55}}]}'
        intent = parse_oracle_output(text, TODAY).intents[0]
        assert intent.target_id is None
        assert intent.search_amount == Decimal("50.00")
        assert intent.patch.transaction_date is None

    def test_explicit_date_is_kept(self):
        text = '{"intents": [%s]}' % (
            '{"action": "create", "data": {"kind": "expense", "amount": 9, "date": "2024-03-09"}}'
        )
        intent = parse_oracle_output(text, TODAY).intents[0]
        assert intent.patch.transaction_date == date(2024, 3, 9)


class TestRateLimitDetection:

    def test_google_quota_exception(self):
        assert is_rate_limit_error(google_exceptions.ResourceExhausted("quota"))
        assert is_rate_limit_error(google_exceptions.TooManyRequests("slow down"))

    def test_message_markers(self):
        assert is_rate_limit_error(RuntimeError("429 Too Many Requests"))
        assert is_rate_limit_error(RuntimeError("RESOURCE_EXHAUSTED"))

    def test_other_errors(self):
        assert not is_rate_limit_error(RuntimeError("boom"))


class TestExtractionAgent:

    def test_prompt_embeds_text_and_date(self):
        prompt = build_extraction_prompt("gastei 25 no almoço", TODAY)
        assert "gastei 25 no almoço" in prompt
        assert "2024-03-10" in prompt
        assert '"schema_version": 1' in prompt

    def test_extract_returns_intents(self, model):
        model.reply_with(_create(amount=12, description="coffee"))
        agent = ExtractionAgent(model=model)

        result = asyncio.run(agent.extract("paid 12 for coffee", TODAY))

        assert result.status == ExtractionStatus.INTENTS
        assert result.intents[0].patch.description == "coffee"
        assert "paid 12 for coffee" in model.prompts[0]

    def test_rate_limit_is_a_typed_result(self):
        agent = ExtractionAgent(model=FakeModel(error=google_exceptions.ResourceExhausted("quota")))
        result = asyncio.run(agent.extract("paid 12", TODAY))
        assert result.status == ExtractionStatus.RATE_LIMITED

    def test_other_oracle_errors_are_parse_failed(self):
        agent = ExtractionAgent(model=FakeModel(error=RuntimeError("network down")))
        result = asyncio.run(agent.extract("paid 12", TODAY))
        assert result.status == ExtractionStatus.PARSE_FAILED

    def test_prose_reply_is_parse_failed(self):
        agent = ExtractionAgent(model=FakeModel(reply="Sorry, I can't help with that."))
        result = asyncio.run(agent.extract("hello", TODAY))
        assert result.status == ExtractionStatus.PARSE_FAILED

    def test_generate_raises_typed_errors(self):
        limited = ExtractionAgent(model=FakeModel(error=RuntimeError("429 quota")))
        broken = ExtractionAgent(model=FakeModel(error=ValueError("blocked")))

        with pytest.raises(OracleRateLimitedError):
            asyncio.run(limited.generate("prompt"))
        with pytest.raises(OracleError) as excinfo:
            asyncio.run(broken.generate("prompt"))
        assert not isinstance(excinfo.value, OracleRateLimitedError)
