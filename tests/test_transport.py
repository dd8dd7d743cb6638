"""Tests for the HTTP clients, faked with httpx.MockTransport."""

import json

import httpx
import pytest

from app.settings import EmailConfig
from core.enums import RiskCategory
from core.exceptions import (
    EvaluationError,
    NotificationError,
    TransportError,
    TransportUnavailableError,
)
from core.models import Detection
from infrastructure.external.emailjs_client import EmailJsClient
from infrastructure.external.inference_client import InferenceClient
from infrastructure.external.transport import TransportClient
from infrastructure.external.webapi_client import WebApiClient

BASE_URL = "http://backend.test"
PREDICT_URL = "http://inference.test/predict"

STORED = {
    '_id': 'img1',
    'filename': '1710000000-site.png',
    'originalName': 'site.png',
    'mimeType': 'image/png',
    'size': 512,
    'url': '/uploads/1710000000-site.png',
    'createdAt': '2025-03-01T12:00:00.000Z',
    'detections': [],
}


def webapi(handler) -> WebApiClient:
    return WebApiClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def inference(handler) -> InferenceClient:
    return InferenceClient(predict_url=PREDICT_URL, transport=httpx.MockTransport(handler))


class TestWebApiClient:
    async def test_upload_is_multipart(self, image):
        seen = {}

        def handler(request):
            seen['method'] = request.method
            seen['path'] = request.url.path
            seen['content_type'] = request.headers['content-type']
            seen['body'] = request.content
            return httpx.Response(200, json=STORED)

        record = await webapi(handler).upload(image)

        assert seen['method'] == 'POST'
        assert seen['path'] == '/api/upload'
        assert seen['content_type'].startswith('multipart/form-data')
        assert b'name="file"; filename="site.png"' in seen['body']
        assert b'name="detections"' not in seen['body']
        assert record.id == 'img1'

    async def test_upload_with_detections(self, image):
        seen = {}

        def handler(request):
            seen['body'] = request.content
            return httpx.Response(200, json=STORED)

        await webapi(handler).upload(image, detections=[Detection('FireAlarm', 0.9)])

        assert b'name="detections"' in seen['body']
        assert b'"object": "FireAlarm"' in seen['body']

    async def test_list_records(self):
        def handler(request):
            assert request.url.path == '/api/images'
            return httpx.Response(200, json=[STORED, 'junk', dict(STORED, _id='img2')])

        records = await webapi(handler).list_records()

        assert [r.id for r in records] == ['img1', 'img2']

    async def test_list_must_be_array(self):
        client = webapi(lambda request: httpx.Response(200, json={'images': []}))
        with pytest.raises(TransportError):
            await client.list_records()

    async def test_not_found_carries_status_and_text(self):
        client = webapi(lambda request: httpx.Response(404, text='Image not found'))

        with pytest.raises(TransportError) as exc_info:
            await client.get_record('missing')

        assert not isinstance(exc_info.value, TransportUnavailableError)
        assert exc_info.value.status_code == 404
        assert exc_info.value.response_text == 'Image not found'
        assert client.get_stats()['failed_requests'] == 1

    async def test_persist_replaces_detections(self):
        seen = {}

        def handler(request):
            seen['method'] = request.method
            seen['path'] = request.url.path
            seen['json'] = json.loads(request.content)
            return httpx.Response(200, json=dict(STORED, detections=seen['json']['detections'], avgConfidence=0.9))

        record = await webapi(handler).persist_detections('img1', [Detection('FireAlarm', 0.9)])

        assert seen['method'] == 'PUT'
        assert seen['path'] == '/api/images/img1'
        assert seen['json'] == {'detections': [{'object': 'FireAlarm', 'confidence': 0.9}]}
        assert record.detection_count == 1
        assert record.avg_confidence == 0.9

    async def test_server_error_is_not_retried_for_writes(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text='unavailable')

        with pytest.raises(TransportUnavailableError):
            await webapi(handler).persist_detections('img1', [])
        assert len(calls) == 1

    async def test_reads_retry_transient_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(502)
            return httpx.Response(200, json=[STORED])

        records = await webapi(handler).list_records()

        assert len(calls) == 2
        assert len(records) == 1

    async def test_invalid_json(self):
        client = webapi(lambda request: httpx.Response(200, text='<html>oops</html>'))
        with pytest.raises(TransportError):
            await client.persist_detections('img1', [])

    async def test_connection_error(self, image):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportUnavailableError):
            await webapi(handler).upload(image)

    async def test_dashboard_fields(self):
        client = webapi(lambda request: httpx.Response(200, json={'avgConfidence': 0.992, 'responseTime': 42}))

        dashboard = await client.get_dashboard()

        assert dashboard.avg_confidence == 0.992
        assert dashboard.response_time == 42.0

    async def test_health_check(self):
        assert await webapi(lambda request: httpx.Response(200, json=[])).health_check()
        assert not await webapi(lambda request: httpx.Response(404)).health_check()


class TestInferenceClient:
    async def test_bare_list(self, image):
        raw = [{'class_name': 'FireAlarm', 'confidence': 0.88, 'box': [10, 10, 50, 60]}]
        client = inference(lambda request: httpx.Response(200, json=raw))

        assert await client.predict(image) == raw
        assert client.last_latency_ms is not None

    async def test_wrapped_list(self, image):
        client = inference(lambda request: httpx.Response(200, json={'detections': []}))
        assert await client.predict(image) == []

    async def test_non_2xx(self, image):
        client = inference(lambda request: httpx.Response(500, text='model crashed'))

        with pytest.raises(TransportError) as exc_info:
            await client.predict(image)

        assert exc_info.value.status_code == 500
        assert client.error_count == 1

    async def test_not_a_list(self, image):
        client = inference(lambda request: httpx.Response(200, json={'error': 'no model'}))
        with pytest.raises(TransportError):
            await client.predict(image)

    async def test_timeout(self, image):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportUnavailableError):
            await inference(handler).predict(image)


class TestTransportClient:
    async def test_evaluate_risk(self):
        seen = {}

        def handler(request):
            seen['json'] = json.loads(request.content)
            return httpx.Response(200, json={'result': {'category': 'CRITICAL', 'score': 91, 'actions': []}})

        client = TransportClient(webapi=webapi(handler), inference=inference(lambda r: httpx.Response(200, json=[])))
        assessment = await client.evaluate_risk('img1')

        assert seen['json'] == {'imageId': 'img1'}
        assert assessment.category == RiskCategory.CRITICAL
        assert assessment.score == 91.0

    async def test_evaluate_risk_failure(self):
        client = TransportClient(
            webapi=webapi(lambda request: httpx.Response(400, text='bad id')),
            inference=inference(lambda r: httpx.Response(200, json=[])),
        )
        with pytest.raises(EvaluationError):
            await client.evaluate_risk('img1')

    async def test_missing_result_is_evaluation_error(self):
        client = TransportClient(
            webapi=webapi(lambda request: httpx.Response(200, json={'ok': True})),
            inference=inference(lambda r: httpx.Response(200, json=[])),
        )
        with pytest.raises(EvaluationError):
            await client.evaluate_risk('img1')

    async def test_stats(self, image):
        client = TransportClient(
            webapi=webapi(lambda request: httpx.Response(200, json=[])),
            inference=inference(lambda r: httpx.Response(200, json=[])),
        )
        await client.list_records()
        await client.infer(image)

        stats = client.get_stats()
        assert stats['total_requests'] == 1
        assert stats['inference_requests'] == 1


class TestEmailJsClient:
    CONFIG = EmailConfig(
        emailjs_api_url='http://email.test/send',
        emailjs_service_id='service_x',
        emailjs_template_id='template_y',
        emailjs_public_key='key_z',
    )

    async def test_send(self):
        seen = {}

        def handler(request):
            seen['json'] = json.loads(request.content)
            return httpx.Response(200, text='OK')

        client = EmailJsClient(config=self.CONFIG, transport=httpx.MockTransport(handler))
        assert await client.send({'name': 'Ops', 'email': 'ops@example.com'})

        assert seen['json'] == {
            'service_id': 'service_x',
            'template_id': 'template_y',
            'user_id': 'key_z',
            'template_params': {'name': 'Ops', 'email': 'ops@example.com'},
        }

    async def test_rejected(self):
        client = EmailJsClient(config=self.CONFIG, transport=httpx.MockTransport(lambda r: httpx.Response(400)))
        with pytest.raises(NotificationError):
            await client.send({'email': 'ops@example.com'})

    async def test_not_configured(self):
        client = EmailJsClient(config=EmailConfig(emailjs_service_id=''))
        with pytest.raises(NotificationError):
            await client.send({'email': 'ops@example.com'})
