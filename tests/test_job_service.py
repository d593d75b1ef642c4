"""
Тесты фасада задач: дедупликация отправки, статус, результат, история.
"""

import threading

import pytest

from conftest import FakeDispatcher, FakeStorage
from docvault_ocr.errors import JobNotFound, PermanentFailure, ResultNotReady
from docvault_ocr.schemas import ExtractionSettings, JobStatus
from docvault_ocr.services.job_registry import JobRegistry
from docvault_ocr.services.job_runner import BackgroundJobRunner
from docvault_ocr.services.job_service import ExtractionJobService


def make_service(dispatcher, max_workers=2):
    registry = JobRegistry()
    storage = FakeStorage({
        "doc-1": (b"img-1", "raster-image"),
        "doc-2": (b"img-2", "raster-image"),
    })
    runner = BackgroundJobRunner(registry, storage, dispatcher, max_workers=max_workers)
    return ExtractionJobService(registry, runner)


def test_resubmission_while_in_flight_returns_same_job():
    gate = threading.Event()
    service = make_service(FakeDispatcher(gate=gate))
    try:
        first = service.submit_extraction("doc-1")
        second = service.submit_extraction("doc-1", ExtractionSettings(language="rus"))

        assert second.job_id == first.job_id
        assert second.deduplicated is True
        assert first.deduplicated is False
        assert service.get_status("doc-1").status == JobStatus.PROCESSING
        with pytest.raises(ResultNotReady):
            service.get_result("doc-1")
    finally:
        gate.set()
        service.runner.shutdown()

    assert len(service.list_jobs()) == 1


def test_completed_result_is_readable():
    service = make_service(FakeDispatcher())
    service.submit_extraction("doc-1")
    service.runner.shutdown()

    status = service.get_status("doc-1")
    result = service.get_result("doc-1")

    assert status.status == JobStatus.COMPLETED
    assert status.progress_hint == 1.0
    assert result.text == "Текст документа"
    assert result.confidence == 91.0
    assert result.page_count == 2


def test_saturated_runner_creates_pending_job():
    gate = threading.Event()
    service = make_service(FakeDispatcher(gate=gate), max_workers=1)
    try:
        first = service.submit_extraction("doc-1")
        second = service.submit_extraction("doc-2")

        assert first.status == JobStatus.PROCESSING
        assert second.status == JobStatus.PENDING
    finally:
        gate.set()
        service.runner.shutdown()

    assert service.get_status("doc-2").status == JobStatus.COMPLETED


def test_failed_status_exposes_error():
    service = make_service(FakeDispatcher(error=PermanentFailure("ничего не распознано")))
    service.submit_extraction("doc-1")
    service.runner.shutdown()

    status = service.get_status("doc-1")

    assert status.status == JobStatus.FAILED
    assert status.error == "ничего не распознано"


def test_history_lists_current_then_previous():
    service = make_service(FakeDispatcher())
    first = service.submit_extraction("doc-1")
    service.runner.shutdown(wait=True)

    service.runner = BackgroundJobRunner(
        service.registry, service.runner.storage, FakeDispatcher(), max_workers=1
    )
    second = service.submit_extraction("doc-1")
    service.runner.shutdown()

    history = service.history("doc-1")
    assert [job.job_id for job in history] == [second.job_id, first.job_id]


def test_rejected_handoff_marks_job_errored():
    service = make_service(FakeDispatcher())
    service.runner.shutdown()

    with pytest.raises(RuntimeError):
        service.submit_extraction("doc-1")

    status = service.get_status("doc-1")
    assert status.status == JobStatus.ERRORED
    assert "не передана исполнителю" in status.error
    assert service.runner.has_capacity()

    service.runner = BackgroundJobRunner(
        service.registry, service.runner.storage, FakeDispatcher(), max_workers=1
    )
    retry = service.submit_extraction("doc-1")
    service.runner.shutdown()

    assert retry.deduplicated is False
    assert service.get_status("doc-1").status == JobStatus.COMPLETED


def test_unknown_document_is_not_found():
    service = make_service(FakeDispatcher())
    try:
        with pytest.raises(JobNotFound):
            service.get_status("nope")
        with pytest.raises(JobNotFound):
            service.get_result("nope")
    finally:
        service.runner.shutdown()
