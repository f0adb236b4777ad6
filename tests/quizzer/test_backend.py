from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fixtures import pdf_bytes, quiz_dict
from pdf_quiz.api import create_app
from pdf_quiz.core.errors import (
    NotFoundError,
    SchemaValidationError,
    UnexpectedError,
    ValidationError,
)
from pdf_quiz.gateway import QuestionGenerationGateway, UploadGateway
from pdf_quiz.gateway.documents import Document
from pdf_quiz.quizzer.backend import HttpQuizBackend, LocalQuizBackend
from pdf_quiz.quizzer.session import Phase, QuizSession


@pytest.fixture
def gateways(fake_openai, config, clock, test_logger):
    upload = UploadGateway(
        fake_openai,
        limits=config.limits,
        store=config.store,
        polling=config.polling,
        logger=test_logger,
        sleep=clock.sleep,
        clock=clock,
    )
    generation = QuestionGenerationGateway(
        fake_openai,
        provider=config.openai,
        generation=config.generation,
        polling=config.polling,
        logger=test_logger,
        sleep=clock.sleep,
        clock=clock,
    )
    return upload, generation


def _docs(*names: str) -> list[Document]:
    return [Document(name=name, data=pdf_bytes(128)) for name in names]


def _mock_backend(handler) -> HttpQuizBackend:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://quiz.test",
    )
    return HttpQuizBackend("http://quiz.test", client=client)


def _asgi_backend(config, gateways, test_logger) -> HttpQuizBackend:
    upload, generation = gateways
    app = create_app(
        config,
        upload_gateway=upload,
        generation_gateway=generation,
        logger=test_logger,
    )
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    )
    return HttpQuizBackend("http://testserver", client=client)


def test_local_backend_runs_gateways(gateways, fake_openai):
    backend = LocalQuizBackend(*gateways)

    async def scenario():
        outcome = await backend.upload(_docs("a.pdf", "b.pdf"))
        questions = await backend.generate(outcome.store_handle, ["Old?"])
        await backend.aclose()
        return outcome, questions

    outcome, questions = asyncio.run(scenario())

    assert outcome.completed
    assert outcome.store_handle == "vs_1"
    assert outcome.files_uploaded == 2
    assert len(questions) == 10
    sent = fake_openai.calls_to("beta.threads.messages.create")[0][1]
    assert "Old?" in sent["content"]


def test_local_backend_check_upload(gateways, fake_openai):
    backend = LocalQuizBackend(*gateways)
    fake_openai.batch_statuses = ["in_progress"]

    pending = asyncio.run(backend.check_upload("vs_9", "vsfb_1"))
    fake_openai.batch_statuses = ["completed"]
    done = asyncio.run(backend.check_upload("vs_9", "vsfb_1"))

    assert not pending.completed
    assert pending.status == "in_progress"
    assert done.completed
    assert done.store_handle == "vs_9"
    retrieve = fake_openai.calls_to("vector_stores.file_batches.retrieve")
    assert retrieve[0] == (("vsfb_1",), {"vector_store_id": "vs_9"})


def test_http_backend_upload_posts_multipart():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={
                "storeHandle": "vs_42",
                "message": "Successfully uploaded 2 PDF files to vector store.",
                "filesUploaded": 2,
                "batchId": "vsfb_7",
            },
        )

    backend = _mock_backend(handler)
    outcome = asyncio.run(backend.upload(_docs("one.pdf", "two.pdf")))

    assert seen["path"] == "/upload"
    assert b'filename="one.pdf"' in seen["body"]
    assert b'filename="two.pdf"' in seen["body"]
    assert outcome.completed
    assert outcome.store_handle == "vs_42"
    assert outcome.batch_id == "vsfb_7"
    assert outcome.files_uploaded == 2


def test_http_backend_upload_in_progress():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            202,
            json={
                "storeHandle": "vs_42",
                "message": "File upload is still in progress. Status: "
                "in_progress",
                "batchId": "vsfb_7",
                "status": "in_progress",
            },
        )

    outcome = asyncio.run(_mock_backend(handler).upload(_docs("a.pdf")))

    assert not outcome.completed
    assert outcome.batch_id == "vsfb_7"


def test_http_backend_check_upload_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(
            200,
            json={
                "storeHandle": "vs_42",
                "message": "done",
                "filesUploaded": 1,
                "batchId": "vsfb_7",
            },
        )

    outcome = asyncio.run(
        _mock_backend(handler).check_upload("vs_42", "vsfb_7")
    )

    assert seen == [("GET", "/upload/vs_42/batches/vsfb_7")]
    assert outcome.completed


def test_http_backend_raises_validation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={
                "message": "Too many files. Please upload a maximum of 10 "
                "PDF files.",
                "code": "validation_error",
            },
        )

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(_mock_backend(handler).upload(_docs("a.pdf")))

    assert excinfo.value.message.startswith("Too many files.")


def test_http_backend_rejects_upload_body_without_handle():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    with pytest.raises(UnexpectedError, match="without a store handle"):
        asyncio.run(_mock_backend(handler).upload(_docs("a.pdf")))


def test_session_survives_malformed_upload_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    session = QuizSession(_mock_backend(handler))
    session.stage_files(_docs("lecture.pdf"))

    asyncio.run(session.start_quiz())

    assert session.state.phase is Phase.COLLECTING_FILES
    assert session.state.error == (
        "The server returned an upload response without a store handle."
    )
    assert session.state.store_handle is None


def test_http_backend_generate_sends_exclusions():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=quiz_dict(3))

    questions = asyncio.run(
        _mock_backend(handler).generate("vs_42", ["Earlier?"])
    )

    assert seen == {
        "path": "/generate",
        "body": {"storeHandle": "vs_42", "existingQuestions": ["Earlier?"]},
    }
    assert [q.question for q in questions] == [
        "Question 1?",
        "Question 2?",
        "Question 3?",
    ]


def test_http_backend_revalidates_questions():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"quiz": []})

    with pytest.raises(SchemaValidationError):
        asyncio.run(_mock_backend(handler).generate("vs_42", []))


def test_http_backend_maps_status_without_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "gone"})

    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(_mock_backend(handler).generate("vs_42", []))

    assert excinfo.value.message == "gone"


def test_http_backend_non_json_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(UnexpectedError) as excinfo:
        asyncio.run(_mock_backend(handler).generate("vs_42", []))

    assert excinfo.value.message == "Bad Gateway"


def test_http_backend_unreadable_success():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with pytest.raises(UnexpectedError, match="unreadable"):
        asyncio.run(_mock_backend(handler).generate("vs_42", []))


def test_http_backend_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UnexpectedError) as excinfo:
        asyncio.run(_mock_backend(handler).upload(_docs("a.pdf")))

    assert "Could not reach the quiz server" in excinfo.value.message


def test_http_backend_aclose_closes_client():
    backend = _mock_backend(lambda request: httpx.Response(200, json={}))

    async def scenario():
        await backend.aclose()
        return backend._client.is_closed

    assert asyncio.run(scenario())


def test_session_over_http_app(config, gateways, test_logger, fake_openai):
    backend = _asgi_backend(config, gateways, test_logger)
    session = QuizSession(backend)
    session.stage_files(_docs("lecture.pdf"))

    async def scenario():
        await session.start_quiz()
        for _ in range(10):
            session.select_option(session.current_question.correct_option)
            session.advance()
        await session.more_questions()
        await backend.aclose()

    asyncio.run(scenario())

    state = session.state
    assert state.phase is Phase.ANSWERING
    assert state.store_handle == "vs_1"
    assert state.score == 10
    assert len(state.questions) == 20
    messages = fake_openai.calls_to("beta.threads.messages.create")
    assert "Question 10?" in messages[1][1]["content"]


def test_session_over_http_app_resumes_pending_batch(
    config, gateways, test_logger, fake_openai
):
    backend = _asgi_backend(config, gateways, test_logger)
    session = QuizSession(backend)
    session.stage_files(_docs("lecture.pdf"))
    fake_openai.batch_statuses = ["in_progress"]

    asyncio.run(session.start_quiz())

    assert session.state.phase is Phase.COLLECTING_FILES
    assert session.state.pending_batch_id == "vsfb_1"
    assert session.state.error.startswith("File upload is still in progress")

    fake_openai.batch_statuses = ["completed"]
    asyncio.run(session.start_quiz())

    assert session.state.phase is Phase.ANSWERING
    assert len(fake_openai.calls_to("vector_stores.create")) == 1
    assert fake_openai.calls_to("vector_stores.file_batches.retrieve")[-1] == (
        ("vsfb_1",),
        {"vector_store_id": "vs_1"},
    )
