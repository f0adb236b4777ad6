from __future__ import annotations

import json
import logging

import pytest

from fixtures import ProviderError, quiz_dict
from pdf_quiz.core.errors import (
    GenerationFailedError,
    NotFoundError,
    OperationTimeoutError,
    SchemaValidationError,
    ValidationError,
)
from pdf_quiz.gateway.generation import QuestionGenerationGateway


def _gateway(client, config, clock, logger=None) -> QuestionGenerationGateway:
    return QuestionGenerationGateway(
        client,
        provider=config.openai,
        generation=config.generation,
        polling=config.polling,
        logger=logger,
        sleep=clock.sleep,
        clock=clock,
    )


def _cleanup_calls(client) -> list[str]:
    return [
        name
        for name in client.names()
        if name in {"beta.assistants.delete", "beta.threads.delete"}
    ]


def test_generate_returns_validated_questions(fake_openai, config, clock):
    gateway = _gateway(fake_openai, config, clock)

    questions = gateway.generate("vs_abc")

    assert len(questions) == 10
    assert questions[0].question == "Question 1?"
    assert fake_openai.names() == [
        "vector_stores.retrieve",
        "vector_stores.files.list",
        "beta.assistants.create",
        "beta.threads.create",
        "beta.threads.messages.create",
        "beta.threads.runs.create",
        "beta.threads.messages.list",
        "beta.assistants.delete",
        "beta.threads.delete",
    ]
    (_, assistant_kwargs), = fake_openai.calls_to("beta.assistants.create")
    assert assistant_kwargs["model"] == "gpt-4o"
    assert assistant_kwargs["tools"] == [{"type": "file_search"}]
    assert assistant_kwargs["tool_resources"] == {
        "file_search": {"vector_store_ids": ["vs_abc"]}
    }
    (message_args, message_kwargs), = fake_openai.calls_to(
        "beta.threads.messages.create"
    )
    assert message_kwargs["role"] == "user"
    assert "MORE NEW" not in message_kwargs["content"]


def test_generate_excludes_existing_questions(fake_openai, config, clock):
    gateway = _gateway(fake_openai, config, clock)
    existing = [f"Earlier question {i}?" for i in range(10)]

    gateway.generate("vs_abc", existing)

    (_, message_kwargs), = fake_openai.calls_to("beta.threads.messages.create")
    content = message_kwargs["content"]
    assert "10 MORE NEW" in content
    for text in existing:
        assert f"- {text}" in content


def test_unknown_store_is_not_found(fake_openai, config, clock):
    fake_openai.missing_stores.add("vs_gone")
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(NotFoundError) as excinfo:
        gateway.generate("vs_gone")

    assert excinfo.value.message == (
        "Vector store not found or inaccessible. Please upload files again."
    )
    assert not fake_openai.calls_to("beta.assistants.create")


def test_empty_store_is_rejected(fake_openai, config, clock):
    fake_openai.store_file_ids = []
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(ValidationError) as excinfo:
        gateway.generate("vs_abc")

    assert excinfo.value.message == (
        "No files found in the vector store. Please upload PDF files first."
    )
    assert not fake_openai.calls_to("beta.assistants.create")


def test_generate_polls_run_until_completed(fake_openai, config, clock):
    fake_openai.run_statuses = ["queued", "in_progress", "completed"]
    gateway = _gateway(fake_openai, config, clock)

    questions = gateway.generate("vs_abc")

    assert len(questions) == 10
    retrieves = fake_openai.calls_to("beta.threads.runs.retrieve")
    assert len(retrieves) == 2
    assert retrieves[0][1] == {"thread_id": "thread_2"}


@pytest.mark.parametrize("status", ["failed", "cancelled", "expired"])
def test_failed_run_surfaces_status_and_cleans_up(
    fake_openai, config, clock, status
):
    fake_openai.run_statuses = [status]
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(GenerationFailedError) as excinfo:
        gateway.generate("vs_abc")

    assert excinfo.value.message == (
        f"Assistant run failed with status: {status}"
    )
    assert _cleanup_calls(fake_openai) == [
        "beta.assistants.delete",
        "beta.threads.delete",
    ]


def test_run_past_ceiling_times_out_and_cleans_up(fake_openai, config, clock):
    fake_openai.run_statuses = ["in_progress"]
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(OperationTimeoutError):
        gateway.generate("vs_abc")

    assert sum(clock.sleeps) == pytest.approx(10)
    assert _cleanup_calls(fake_openai) == [
        "beta.assistants.delete",
        "beta.threads.delete",
    ]


def test_missing_assistant_message_fails(fake_openai, config, clock):
    fake_openai.assistant_reply = None
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(GenerationFailedError, match="No response from assistant"):
        gateway.generate("vs_abc")


def test_reply_wrapped_in_prose_is_accepted(fake_openai, config, clock):
    body = json.dumps(quiz_dict(4))
    fake_openai.assistant_reply = f"Sure! Here it is:\n```json\n{body}\n```"
    gateway = _gateway(fake_openai, config, clock)

    questions = gateway.generate("vs_abc")

    assert len(questions) == 4
    assert not fake_openai.calls_to("chat.completions.create")


def test_invalid_reply_uses_structured_fallback(fake_openai, config, clock):
    broken = quiz_dict(2)
    broken["quiz"][0]["options"][1]["correct"] = True
    fake_openai.assistant_reply = json.dumps(broken)
    gateway = _gateway(fake_openai, config, clock)

    questions = gateway.generate("vs_abc")

    assert questions[0].question == "Fallback 1?"
    (_, kwargs), = fake_openai.calls_to("chat.completions.create")
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_tokens"] == 4000
    assert kwargs["messages"][0]["role"] == "system"
    assert "Context:" in kwargs["messages"][1]["content"]
    assert _cleanup_calls(fake_openai) == [
        "beta.assistants.delete",
        "beta.threads.delete",
    ]


def test_invalid_fallback_raises_schema_error(fake_openai, config, clock):
    fake_openai.assistant_reply = "I could not find enough material."
    fake_openai.completion_reply = json.dumps({"quiz": []})
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(SchemaValidationError):
        gateway.generate("vs_abc")

    assert len(_cleanup_calls(fake_openai)) == 2


def test_fallback_provider_error_is_schema_error(fake_openai, config, clock):
    fake_openai.assistant_reply = "not json"
    fake_openai.failures["chat.completions.create"] = ProviderError(
        "overloaded", status_code=503
    )
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(SchemaValidationError) as excinfo:
        gateway.generate("vs_abc")

    assert excinfo.value.message == (
        "Failed to generate structured quiz response"
    )
    assert excinfo.value.details == "overloaded"


def test_cleanup_failures_are_logged(
    fake_openai, config, clock, test_logger, caplog
):
    fake_openai.failures["beta.assistants.delete"] = ProviderError("gone", 404)
    fake_openai.failures["beta.threads.delete"] = ProviderError("gone", 404)
    gateway = _gateway(fake_openai, config, clock, logger=test_logger)

    with caplog.at_level(logging.WARNING, logger=test_logger.name):
        questions = gateway.generate("vs_abc")

    assert len(questions) == 10
    messages = [record.getMessage() for record in caplog.records]
    assert "Failed to delete assistant" in messages
    assert "Failed to delete thread" in messages


def test_provider_error_mid_run_is_translated(fake_openai, config, clock):
    fake_openai.failures["beta.threads.runs.create"] = ProviderError(
        "No such vector store", status_code=404
    )
    gateway = _gateway(fake_openai, config, clock)

    with pytest.raises(NotFoundError):
        gateway.generate("vs_abc")

    assert len(_cleanup_calls(fake_openai)) == 2
