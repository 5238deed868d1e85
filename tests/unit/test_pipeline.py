"""Tests for SpanPipeline assembly."""

from __future__ import annotations

import json

import pytest

from spanpipe.core.batch_processor import BatchSpanProcessor
from spanpipe.core.config import PipelineConfig
from spanpipe.core.pipeline import SpanPipeline, create_http_adapter
from spanpipe.core.simple_processor import SimpleSpanProcessor
from spanpipe.core.tracing.adapters import ConsoleSpanAdapter, HttpSpanAdapter, InMemorySpanAdapter


class TestDefaultAdapters:
    def test_batch_mode_uses_http_adapter(self):
        pipeline = SpanPipeline(PipelineConfig(endpoint="collector:4318/v1/traces", insecure=True))

        assert isinstance(pipeline.driver, BatchSpanProcessor)
        assert [type(a) for a in pipeline.adapters] == [HttpSpanAdapter]
        assert pipeline.adapters[0].config.endpoint == "http://collector:4318/v1/traces"
        pipeline.shutdown(timeout=0.1)

    def test_debug_simple_mode_mirrors_to_console(self):
        pipeline = SpanPipeline(PipelineConfig(export_mode="simple", debug=True))

        assert isinstance(pipeline.driver, SimpleSpanProcessor)
        assert [type(a) for a in pipeline.adapters] == [HttpSpanAdapter, ConsoleSpanAdapter]
        pipeline.shutdown(timeout=0.1)

    def test_http_adapter_built_from_config(self):
        config = PipelineConfig(
            endpoint="https://collector/v1/traces",
            headers={"X-Env": "test"},
            token="abcd",
            compression="gzip",
            export_timeout_seconds=3.0,
            retry_max_attempts=7,
            debug=True,
        )

        adapter = create_http_adapter(config)

        assert adapter.config.headers == {"X-Env": "test", "x-spanpipe-token": "abcd"}
        assert adapter.config.compression == "gzip"
        assert adapter.config.timeout_seconds == 3.0
        assert adapter.config.retry.max_retries == 7
        assert adapter.config.debug is True


class TestSpanPipeline:
    def test_spans_reach_adapter(self, simple_pipeline, in_memory_adapter):
        tracer = simple_pipeline.get_tracer("tests")

        with tracer.start_as_current_span("op") as span:
            span.set_attribute("http.request.path", "/foo/bar")

        exported = in_memory_adapter.get_all_spans()
        assert len(exported) == 1
        assert exported[0].attributes["http.request.path"] == "/foo/bar"
        assert exported[0].resource.attributes["service.name"] == "test-app"

    def test_excluded_keys_apply_to_later_writes(self, simple_pipeline, in_memory_adapter):
        tracer = simple_pipeline.get_tracer("tests")
        simple_pipeline.add_excluded_key("http.request.headers.authorization")

        with tracer.start_as_current_span("op") as span:
            span.set_attribute("http.request.headers", {"authorization": "secret", "accept": "*/*"})

        simple_pipeline.remove_excluded_key("http.request.headers.authorization")
        with tracer.start_as_current_span("op2") as span:
            span.set_attribute("http.request.headers", {"authorization": "secret"})

        first, second = in_memory_adapter.get_all_spans()
        assert json.loads(first.attributes["http.request.headers"]) == {"accept": "*/*"}
        assert json.loads(second.attributes["http.request.headers"]) == {"authorization": "secret"}

    def test_update_config_changes_size_limit(self, simple_pipeline, in_memory_adapter):
        tracer = simple_pipeline.get_tracer("tests")
        simple_pipeline.update_config(max_attribute_size=4)

        with tracer.start_as_current_span("op") as span:
            span.set_attribute("body", "abcdefgh")

        assert in_memory_adapter.get_all_spans()[0].attributes["body"] == "abcd"

    def test_batch_pipeline_flush(self):
        adapter = InMemorySpanAdapter()
        pipeline = SpanPipeline(PipelineConfig(batch_max_delay_seconds=60.0), adapters=[adapter]).start()
        tracer = pipeline.get_tracer("tests")

        for i in range(3):
            tracer.start_span(f"span-{i}").finish()

        assert pipeline.force_flush(timeout=1.0)
        assert [s.name for s in adapter.get_all_spans()] == ["span-0", "span-1", "span-2"]
        pipeline.shutdown()

    def test_shutdown_drains_batch(self):
        adapter = InMemorySpanAdapter()
        pipeline = SpanPipeline(PipelineConfig(batch_max_delay_seconds=60.0), adapters=[adapter]).start()

        pipeline.get_tracer("tests").start_span("pending").finish()
        pipeline.shutdown(timeout=1.0)
        pipeline.shutdown(timeout=1.0)

        assert [s.name for s in adapter.get_all_spans()] == ["pending"]

    def test_start_is_idempotent(self, simple_pipeline):
        assert simple_pipeline.start() is simple_pipeline

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SPANPIPE_APP_NAME", "env-app")
        monkeypatch.setenv("SPANPIPE_EXPORT_MODE", "simple")

        pipeline = SpanPipeline.from_env(debug=False)

        assert pipeline.config.app_name == "env-app"
        assert isinstance(pipeline.driver, SimpleSpanProcessor)
        pipeline.shutdown(timeout=0.1)

    def test_install_global(self, mocker):
        set_provider = mocker.patch("spanpipe.core.pipeline.trace.set_tracer_provider")
        pipeline = SpanPipeline(PipelineConfig(), adapters=[InMemorySpanAdapter()])

        pipeline.install_global()

        set_provider.assert_called_once_with(pipeline.tracer_provider)
        pipeline.shutdown(timeout=0.1)

    def test_non_integer_size_update_keeps_tracing_working(self, simple_pipeline, in_memory_adapter):
        with pytest.raises(ValueError):
            simple_pipeline.update_config(max_attribute_size=100.0)

        tracer = simple_pipeline.get_tracer("tests")
        with tracer.start_as_current_span("op") as span:
            span.set_attribute("body", "abc")

        assert simple_pipeline.config.max_attribute_size == 4096
        assert in_memory_adapter.get_all_spans()[0].attributes["body"] == "abc"
