import gzip
import io
import json
import logging
import threading
import time

import pytest

from metrical.agent import Agent, MetricSendError
from metrical.agent_config import AgentConfig
from metrical.http_client import HTTPRequest, HTTPResponse, RequestError
from metrical.metrics import (
    METRIC_POLL_COUNT,
    METRIC_RANDOM_VALUE,
    RUNTIME_GAUGE_NAMES,
    Metric,
)

LOGGER = logging.getLogger("test-agent")


class RecordingClient:
    def __init__(self, status=200, error=None):
        self.status = status
        self.error = error
        self.requests = []

    def do(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return HTTPResponse(self.status, io.BytesIO(b""))

    def post(self, url, content_type, body):
        return self.do(HTTPRequest("POST", url, body, {"Content-Type": content_type}))


def make_agent(client=None, url="localhost:8080", verbose=True):
    config = AgentConfig(
        server_url=url, poll_interval=1, report_interval=1, verbose_logging=verbose
    )
    return Agent(config, LOGGER, client if client is not None else RecordingClient())


@pytest.mark.parametrize(
    "config",
    [AgentConfig(), AgentConfig.with_url("http://example.com:9090")],
)
def test_new_agent(config):
    agent = Agent(config, LOGGER)
    assert agent.config is config
    assert agent.metrics.gauges == {}
    assert agent.metrics.counters == {}
    assert agent.http_client is not None and hasattr(agent.http_client, "do")
    assert not agent.done.is_set()


def test_collect_metrics():
    agent = Agent(AgentConfig(), LOGGER)
    agent.collect_metrics()

    total = len(agent.metrics.gauges) + len(agent.metrics.counters)
    assert total >= 29
    for name in (*RUNTIME_GAUGE_NAMES, METRIC_RANDOM_VALUE):
        assert name in agent.metrics.gauges
    assert METRIC_POLL_COUNT in agent.metrics.counters

    initial = agent.metrics.counters[METRIC_POLL_COUNT]
    agent.collect_metrics()
    assert agent.metrics.counters[METRIC_POLL_COUNT] == initial + 1


@pytest.mark.parametrize(
    "config, workers",
    [(AgentConfig(), 10), (AgentConfig.with_url("http://example.com:9090"), 5)],
)
def test_collect_metrics_thread_safety(config, workers):
    agent = Agent(config, LOGGER)
    threads = [threading.Thread(target=agent.collect_metrics) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(agent.metrics.gauges) + len(agent.metrics.counters) >= 29
    assert agent.metrics.counters[METRIC_POLL_COUNT] == workers


def test_graceful_shutdown():
    config = AgentConfig(poll_interval=0.05, report_interval=60)
    agent = Agent(config, LOGGER, RecordingClient())
    runner = threading.Thread(target=agent.run)
    runner.start()
    time.sleep(0.3)

    assert len(agent.metrics.gauges) + len(agent.metrics.counters) > 0

    agent.stop()
    runner.join(timeout=2)
    assert not runner.is_alive()
    assert agent.done.is_set()


def test_send_single_metric_json_unsupported_type():
    client = RecordingClient()
    agent = make_agent(client)
    with pytest.raises(TypeError):
        agent.send_single_metric_json("TestMetric", "string")
    assert client.requests == []


@pytest.mark.parametrize(
    "name, value, expected_type",
    [("TestGauge", 42.5, "gauge"), ("TestCounter", 100, "counter")],
)
def test_prepare_metric_json(name, value, expected_type):
    metric = make_agent().prepare_metric_json(name, value)
    assert metric.id == name
    assert metric.mtype == expected_type


def test_prepare_gauge_metric():
    metric = make_agent().prepare_metric_json("test_gauge", 42.5)
    assert metric.mtype == "gauge"
    assert metric.value == 42.5
    assert metric.delta is None


def test_prepare_counter_metric():
    metric = make_agent().prepare_metric_json("test_counter", 100)
    assert metric.mtype == "counter"
    assert metric.delta == 100
    assert metric.value is None


def test_prepare_metric_unknown_type():
    with pytest.raises(TypeError) as excinfo:
        make_agent().prepare_metric_json("test_unknown", "string_value")
    assert str(excinfo.value) == "unknown metric type for test_unknown: str"


def test_prepare_metric_rejects_bool():
    with pytest.raises(TypeError):
        make_agent().prepare_metric_json("flag", True)


def test_compress_json_data():
    data = b'{"test": "data", "number": 42}'
    assert gzip.decompress(make_agent().compress_data(data)) == data


def test_compress_empty_data():
    compressed = make_agent().compress_data(b"")
    assert len(compressed) > 0
    assert gzip.decompress(compressed) == b""


def test_compress_large_data():
    data = b"This is a test string that will be repeated many times. " * 1000
    compressed = make_agent().compress_data(data)
    assert len(compressed) / len(data) <= 0.8


def test_metric_to_json_to_compression_round_trip():
    agent = make_agent()
    metric = agent.prepare_metric_json("test_metric", 123.45)
    json_data = json.dumps(metric.to_dict()).encode()
    restored_bytes = gzip.decompress(agent.compress_data(json_data))
    assert restored_bytes == json_data

    restored = Metric.from_dict(json.loads(restored_bytes))
    assert restored.id == metric.id
    assert restored.mtype == metric.mtype
    assert restored.value == 123.45


def test_send_json_request_builds_request():
    client = RecordingClient()
    agent = make_agent(client)
    agent.send_json_request(Metric(id="Alloc", mtype="gauge", value=1.5))

    assert len(client.requests) == 1
    request = client.requests[0]
    assert request.method == "POST"
    assert request.url == "http://localhost:8080/update"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Content-Encoding"] == "gzip"
    assert request.headers["Accept-Encoding"] == "gzip"
    assert json.loads(gzip.decompress(request.body)) == {
        "id": "Alloc",
        "type": "gauge",
        "value": 1.5,
    }


def test_send_json_request_keeps_https_scheme():
    client = RecordingClient()
    agent = make_agent(client, url="https://example.com:9090")
    agent.send_json_request(Metric(id="PollCount", mtype="counter", delta=3))
    assert client.requests[0].url == "https://example.com:9090/update"


def test_send_json_request_bad_status():
    agent = make_agent(RecordingClient(status=400))
    with pytest.raises(MetricSendError, match="server returned status 400"):
        agent.send_json_request(Metric(id="x", mtype="gauge", value=1.0))


def test_send_single_metric_json_wraps_transport_error():
    agent = make_agent(RecordingClient(error=RequestError("boom")))
    with pytest.raises(MetricSendError) as excinfo:
        agent.send_single_metric_json("Alloc", 2.0)
    message = str(excinfo.value)
    assert message.startswith("failed to send metric Alloc:")
    assert "failed to send HTTP request with retry: boom" in message


def test_send_metrics_sends_every_metric():
    client = RecordingClient()
    agent = make_agent(client)
    agent.metrics.gauges.update({"g1": 1.0, "g2": 2.0})
    agent.metrics.counters["c1"] = 7

    assert agent.send_metrics() == (3, 0)
    bodies = {
        tuple(sorted(json.loads(gzip.decompress(r.body)).items())) for r in client.requests
    }
    assert bodies == {
        (("id", "g1"), ("type", "gauge"), ("value", 1.0)),
        (("id", "g2"), ("type", "gauge"), ("value", 2.0)),
        (("delta", 7), ("id", "c1"), ("type", "counter")),
    }


def test_send_metrics_counts_failures():
    agent = make_agent(RecordingClient(status=500))
    agent.metrics.gauges["g"] = 1.0
    agent.metrics.counters["c"] = 1
    assert agent.send_metrics() == (0, 2)