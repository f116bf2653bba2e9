"""MessageEnvelope validation tests

Covers:
1. new_envelope builds a valid, immutable envelope
2. validate_envelope reports every broken field at once
3. identifier checks accept ULIDs and UUIDs only
4. the retry budget is checked at model level
"""

import uuid
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError
from ulid import ULID
from wisdomos.core.exceptions import ValidationError
from wisdomos.core.models import (
    AgentType,
    BackoffStrategy,
    Intent,
    MessageEnvelope,
    ProvenanceSource,
    is_valid_identifier,
    new_envelope,
    validate_envelope,
)


def _raw(**overrides) -> dict:
    data = {
        "message_id": str(ULID()),
        "created_at": datetime(2025, 3, 10, tzinfo=UTC).isoformat(),
        "actor": "JournalAgent",
        "intent": "execute",
        "task": "journal.ingest",
        "payload": {"user_id": "u1", "content": "hello"},
    }
    data.update(overrides)
    return data


class TestNewEnvelope:
    def test_defaults(self):
        """A fresh envelope carries a ULID, system provenance and the default retry budget"""
        env = new_envelope(AgentType.JOURNAL, "journal.ingest", {"user_id": "u1"})
        assert is_valid_identifier(env.message_id)
        assert env.actor == AgentType.JOURNAL
        assert env.intent == Intent.EXECUTE
        assert env.provenance.source == ProvenanceSource.SYSTEM
        assert env.retry.count == 0
        assert env.retry.max == 3
        assert env.retry.backoff == BackoffStrategy.EXPONENTIAL
        assert env.ttl_sec == 86400
        assert env.user_id == "u1"

    def test_explicit_message_id(self):
        """message_id can be fixed by the caller"""
        message_id = str(ULID())
        env = new_envelope(AgentType.PLANNER, "plan.task", message_id=message_id)
        assert env.message_id == message_id

    def test_immutable(self):
        """Envelopes are frozen"""
        env = new_envelope(AgentType.JOURNAL, "journal.ingest")
        with pytest.raises(PydanticValidationError):
            env.task = "other"  # type: ignore[misc]

    def test_user_id_absent(self):
        env = new_envelope(AgentType.INTEGRITY, "integrity.sweep")
        assert env.user_id is None


class TestValidateEnvelope:
    def test_valid_mapping(self):
        env = validate_envelope(_raw())
        assert isinstance(env, MessageEnvelope)
        assert env.task == "journal.ingest"

    def test_revalidates_envelope(self):
        """An already built envelope passes through unchanged"""
        env = new_envelope(AgentType.JOURNAL, "journal.ingest")
        assert validate_envelope(env) == env

    def test_reports_all_fields(self):
        """Every broken field yields one FieldError"""
        with pytest.raises(ValidationError) as exc_info:
            validate_envelope(
                _raw(
                    message_id="not-an-id",
                    actor="NobodyAgent",
                    task="   ",
                    created_at="2025-03-10T12:00:00",
                )
            )
        fields = {e.field for e in exc_info.value.errors}
        assert {"message_id", "actor", "task", "created_at"} <= fields
        assert exc_info.value.retryable is False

    def test_naive_created_at_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_envelope(_raw(created_at="2025-03-10T12:00:00"))
        assert [e.field for e in exc_info.value.errors] == ["created_at"]

    def test_malformed_dependency(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_envelope(_raw(dependencies=["nope"]))
        assert exc_info.value.errors[0].field == "dependencies"

    def test_retry_count_over_max(self):
        """retry.count above retry.max is a model-level error mapped to retry.count"""
        with pytest.raises(ValidationError) as exc_info:
            validate_envelope(_raw(retry={"count": 4, "max": 3}))
        assert [e.field for e in exc_info.value.errors] == ["retry.count"]

    def test_zero_ttl_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_envelope(_raw(ttl_sec=0))
        assert exc_info.value.errors[0].field == "ttl_sec"


class TestIdentifiers:
    def test_ulid(self):
        assert is_valid_identifier(str(ULID()))

    def test_uuid(self):
        assert is_valid_identifier(str(uuid.uuid4()))

    def test_garbage(self):
        assert not is_valid_identifier("12345")
        assert not is_valid_identifier("")
