"""Tests for the upload-detect-persist orchestrator."""

import asyncio

import pytest

from core.enums import RecordEventType, SubmissionState as S
from core.exceptions import TransportError
from services.detection.orchestrator import DetectionOrchestrator, Submission
from services.views import RecordViewCache
from tests.conftest import make_image, make_png

RAW_RESULTS = [
    {'class_name': 'FireAlarm', 'confidence': 0.88, 'box': [10, 10, 50, 60]},
    {'class_name': 'OxygenTank', 'confidence': 0.7, 'box': [0, 0, 20, 40]},
    {'class_name': '', 'confidence': 0.9, 'box': [0, 0, 1, 1]},
]


@pytest.fixture
def events(bus):
    seen = []
    bus.subscribe(seen.append)
    return seen


@pytest.fixture
def orchestrator(fake_transport, bus):
    return DetectionOrchestrator(transport=fake_transport, bus=bus, detector_name='yolo')


class TestSubmit:
    async def test_success_path(self, orchestrator, fake_transport, events, image):
        fake_transport.raw_results = RAW_RESULTS

        submission = await orchestrator.submit(image)

        assert submission.history == [S.IDLE, S.UPLOADING, S.UPLOADED, S.DETECTING, S.DETECTED, S.PERSISTING, S.DONE]
        assert submission.is_confirmed
        assert submission.error is None
        assert [d.label for d in submission.detections] == ['FireAlarm', 'OxygenTank']
        assert submission.record.detection_count == 2
        assert submission.preview_ref == '/uploads/site.png'

        assert [e.kind for e in events] == [RecordEventType.CREATED, RecordEventType.UPDATED]
        assert events[0].record.detection_count == 0
        assert events[1].record.detection_count == 2
        assert events[0].record.id == events[1].record.id == submission.record_id
        assert fake_transport.calls == ['upload', 'get_record', 'infer', 'persist']
        assert orchestrator.get_stats() == {'submitted': 1, 'completed': 1, 'failed': 0}

    async def test_detections_are_stamped(self, orchestrator, fake_transport, image):
        fake_transport.raw_results = RAW_RESULTS[:1]

        submission = await orchestrator.submit(image)

        detection = submission.record.detections[0]
        assert detection.source == 'yolo'
        assert detection.detected_at is not None
        assert detection.bounding_box.width == 40

    async def test_upload_failure_publishes_nothing(self, orchestrator, fake_transport, events, image):
        fake_transport.failures['upload'] = TransportError("connection refused")

        submission = await orchestrator.submit(image)

        assert submission.history == [S.IDLE, S.UPLOADING, S.ERROR]
        assert submission.record is None
        assert submission.preview_ref == 'local:site.png'
        assert isinstance(submission.error, TransportError)
        assert events == []
        assert 'infer' not in fake_transport.calls

    async def test_inference_failure_keeps_record_visible(self, orchestrator, fake_transport, events, image):
        fake_transport.failures['infer'] = TransportError("Detection failed with status 500", status_code=500)

        submission = await orchestrator.submit(image)

        assert submission.history == [S.IDLE, S.UPLOADING, S.UPLOADED, S.DETECTING, S.ERROR]
        assert submission.record is not None
        assert [e.kind for e in events] == [RecordEventType.CREATED]
        assert submission.error.status_code == 500

    async def test_persist_failure_keeps_last_good_record(self, orchestrator, fake_transport, events, image):
        fake_transport.raw_results = RAW_RESULTS
        fake_transport.failures['persist'] = TransportError("PUT failed", status_code=503)

        submission = await orchestrator.submit(image)

        assert submission.history[-3:] == [S.DETECTED, S.PERSISTING, S.ERROR]
        assert submission.record.detection_count == 0
        assert len(submission.detections) == 2
        assert not submission.is_confirmed
        assert [e.kind for e in events] == [RecordEventType.CREATED]
        assert orchestrator.failed_count == 1

    async def test_failed_refetch_uses_upload_response(self, orchestrator, fake_transport, image):
        fake_transport.failures['get_record'] = TransportError("timeout")

        submission = await orchestrator.submit(image)

        assert submission.state == S.DONE
        assert submission.record_id == 'img1'

    async def test_provisional_upload_is_not_persisted(self, orchestrator, fake_transport, events, image):
        fake_transport.provisional_upload = True
        fake_transport.raw_results = RAW_RESULTS

        submission = await orchestrator.submit(image)

        assert submission.history == [S.IDLE, S.UPLOADING, S.UPLOADED, S.DETECTING, S.DETECTED, S.ERROR]
        assert submission.record.is_provisional
        assert 'persist' not in fake_transport.calls
        assert [e.kind for e in events] == [RecordEventType.CREATED]

    async def test_error_reporter_is_called(self, fake_transport, bus, image):
        reported = []
        fake_transport.failures['upload'] = TransportError("boom")
        orchestrator = DetectionOrchestrator(
            transport=fake_transport, bus=bus, error_reporter=lambda s, e: reported.append((s.state, e)),
        )

        await orchestrator.submit(image)

        assert len(reported) == 1
        assert reported[0][0] == S.ERROR


class TestSubmitPath:
    async def test_submit_from_disk(self, orchestrator, fake_transport, tmp_path):
        path = tmp_path / 'site.png'
        path.write_bytes(make_png())

        submission = await orchestrator.submit_path(path)

        assert submission.state == S.DONE
        assert submission.image.mime_type == 'image/png'

    async def test_unreadable_file_never_reaches_transport(self, orchestrator, fake_transport, tmp_path):
        path = tmp_path / 'broken.png'
        path.write_bytes(b'not an image')

        submission = await orchestrator.submit_path(path)

        assert submission.history == [S.IDLE, S.ERROR]
        assert fake_transport.calls == []


class TestRedetect:
    async def test_redetect_after_done(self, orchestrator, fake_transport, events, image):
        fake_transport.raw_results = RAW_RESULTS[:1]
        submission = await orchestrator.submit(image)

        fake_transport.raw_results = RAW_RESULTS[:2]
        await orchestrator.detect(submission)

        assert submission.state == S.DONE
        assert submission.record.detection_count == 2
        assert [e.kind for e in events] == [RecordEventType.CREATED, RecordEventType.UPDATED, RecordEventType.UPDATED]

    async def test_redetect_after_inference_error(self, orchestrator, fake_transport, image):
        fake_transport.failures['infer'] = TransportError("down")
        submission = await orchestrator.submit(image)
        assert submission.state == S.ERROR

        del fake_transport.failures['infer']
        fake_transport.raw_results = RAW_RESULTS
        await orchestrator.detect(submission)

        assert submission.state == S.DONE

    async def test_never_uploaded_submission_is_ignored(self, orchestrator, fake_transport, image):
        submission = Submission(image=image)

        await orchestrator.detect(submission)

        assert submission.state == S.IDLE
        assert fake_transport.calls == []

    async def test_inference_in_flight_is_not_duplicated(self, orchestrator, fake_transport, image):
        submission = await orchestrator.submit(image)
        submission.detecting = True

        await orchestrator.detect(submission)

        assert fake_transport.calls.count('infer') == 1

    async def test_invalid_transition_rejected(self, image):
        submission = Submission(image=image)
        with pytest.raises(RuntimeError):
            submission.transition(S.DONE)


class TestConcurrency:
    async def test_persists_for_one_record_are_serialized(self, orchestrator, fake_transport, image):
        first = await orchestrator.submit(image)
        second = Submission(image=image, record=first.record, state=S.DONE)

        fake_transport.persist_gate = asyncio.Event()
        fake_transport.raw_results = RAW_RESULTS[:1]
        run_one = asyncio.create_task(orchestrator.detect(first))
        await asyncio.sleep(0)
        fake_transport.raw_results = RAW_RESULTS[:2]
        run_two = asyncio.create_task(orchestrator.detect(second))
        await asyncio.sleep(0)

        fake_transport.persist_gate.set()
        await asyncio.gather(run_one, run_two)

        assert fake_transport.max_parallel_persists == 1
        # Last write wins
        assert fake_transport.stored[first.record_id].detection_count == 2
        assert orchestrator._persist_locks == {}

    async def test_submissions_reach_a_mounted_view(self, orchestrator, fake_transport, bus):
        fake_transport.raw_results = RAW_RESULTS
        view = RecordViewCache(transport=fake_transport, bus=bus)
        await view.mount()

        results = await asyncio.gather(*(orchestrator.submit(make_image(f"img{i}.png")) for i in range(3)))

        assert all(s.is_confirmed for s in results)
        assert len(view) == 3
        assert all(r.detection_count == 2 for r in view.snapshot())

    async def test_persist_locks_are_released(self, orchestrator, fake_transport, image):
        fake_transport.raw_results = RAW_RESULTS
        fake_transport.failures['persist'] = TransportError("timeout")
        failed = await orchestrator.submit(image)
        del fake_transport.failures['persist']
        await orchestrator.submit(make_image("other.png"))

        assert failed.state == S.ERROR
        assert orchestrator._persist_locks == {}


class TestDisplayConfidence:
    async def test_estimate_before_confirmation(self, orchestrator, fake_transport, image):
        fake_transport.raw_results = RAW_RESULTS
        fake_transport.failures['persist'] = TransportError("down")

        submission = await orchestrator.submit(image)

        assert submission.display_avg_confidence == pytest.approx((0.88 + 0.7) / 2)
