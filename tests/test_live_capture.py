"""Tests for image acquisition and the live camera session."""

from PIL import Image
import pytest

from core.enums import BoxUnits, RecordEventType
from core.exceptions import AcquisitionError, TransportError
from core.models import ImageFile
from services.acquisition.image_loader import encode_frame, load_image_bytes, load_image_file
from services.detection.live_capture import LiveCaptureSession
from tests.conftest import make_png

RAW = [{'class_name': 'FireExtinguisher', 'confidence': 0.9, 'box': [32, 12, 48, 36]}]


class TestImageLoader:
    def test_png_bytes(self, png_bytes):
        image = load_image_bytes(png_bytes, 'site.png')

        assert image.mime_type == 'image/png'
        assert image.frame_size == (64, 48)
        assert image.size_bytes == len(png_bytes)

    @pytest.mark.parametrize('content', [b'', b'plain text, not pixels'])
    def test_rejects_non_images(self, content):
        with pytest.raises(AcquisitionError):
            load_image_bytes(content, 'bad.png')

    def test_missing_file(self, tmp_path):
        with pytest.raises(AcquisitionError) as exc_info:
            load_image_file(tmp_path / 'nope.jpg')
        assert exc_info.value.filename == 'nope.jpg'

    def test_file_keeps_local_path(self, tmp_path):
        path = tmp_path / 'site.png'
        path.write_bytes(make_png())
        assert load_image_file(path).local_path == path

    def test_encode_frame(self):
        frame = encode_frame(Image.new('RGB', (32, 24)), prefix='capture')

        assert frame.filename.startswith('capture-')
        assert frame.filename.endswith('.jpg')
        assert frame.mime_type == 'image/jpeg'
        assert frame.frame_size == (32, 24)


class TestLiveCaptureSession:
    async def test_preview_uses_normalized_boxes(self, fake_transport, bus, image):
        fake_transport.raw_results = RAW
        session = LiveCaptureSession(transport=fake_transport, bus=bus, detector_name='yolo')

        detections = await session.preview(image)

        bbox = detections[0].bounding_box
        assert bbox.units == BoxUnits.NORMALIZED
        assert (bbox.x, bbox.y, bbox.width, bbox.height) == (0.5, 0.25, 0.25, 0.5)
        assert session.frames_processed == 1

    async def test_preview_failure_keeps_previous_overlay(self, fake_transport, bus, image):
        fake_transport.raw_results = RAW
        session = LiveCaptureSession(transport=fake_transport, bus=bus)
        first = await session.preview(image)

        fake_transport.failures['infer'] = TransportError("timeout")
        second = await session.preview(image)

        assert second == first
        assert isinstance(session.last_error, TransportError)

    async def test_preview_needs_frame_size(self, fake_transport, bus):
        session = LiveCaptureSession(transport=fake_transport, bus=bus)
        frame = ImageFile(filename='f.jpg', content=b'x', mime_type='image/jpeg')

        with pytest.raises(AcquisitionError):
            await session.preview(frame)

    async def test_save_stores_pixel_boxes_and_publishes(self, fake_transport, bus, image):
        events = []
        bus.subscribe(events.append)
        fake_transport.raw_results = RAW
        session = LiveCaptureSession(transport=fake_transport, bus=bus)
        await session.preview(image)

        record = await session.save(image)

        bbox = record.detections[0].bounding_box
        assert bbox.units == BoxUnits.PIXELS
        assert (bbox.x, bbox.y, bbox.width, bbox.height) == (32, 12, 16, 24)
        assert [(e.kind, e.source) for e in events] == [(RecordEventType.CREATED, 'live-camera')]
        assert session.frames_saved == 1

    async def test_save_failure(self, fake_transport, bus, image):
        events = []
        bus.subscribe(events.append)
        fake_transport.failures['upload'] = TransportError("413", status_code=413)
        session = LiveCaptureSession(transport=fake_transport, bus=bus)

        assert await session.save(image) is None
        assert events == []
