"""Prometheus projection of the daemon's runtime state."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import Any, cast

import msgspec
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from .state.context import RuntimeState

logger = logging.getLogger("chatbridge.metrics")

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_]")
_INFO_METRIC = "chatbridge_info"
_GAUGE_DOC = "Chat bridge runtime metric"
_INFO_DOC = "Chat bridge informational metric"

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


def _sanitize_metric_name(name: str) -> str:
    cleaned = _SANITIZE_RE.sub("_", name.lower()).strip("_") or "chatbridge_metric"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


class SessionStateCollector(Collector):
    """Prometheus collector over :meth:`RuntimeState.build_metrics_snapshot`.

    Numbers and booleans become gauges; strings and missing values are
    folded into a single ``chatbridge_info`` metric keyed by path.
    """

    def __init__(self, state: RuntimeState) -> None:
        self._state = state

    def collect(self) -> Iterator[Any]:
        snapshot = self._state.build_metrics_snapshot()
        info_values: list[tuple[str, str]] = []
        for metric_type, name, value in self._flatten("chatbridge", snapshot):
            if metric_type == "gauge":
                metric = GaugeMetricFamily(_sanitize_metric_name(name), _GAUGE_DOC)
                metric.add_metric((), value)
                yield metric
            else:
                info_values.append((name, value))

        if info_values:
            info_metric = InfoMetricFamily(_INFO_METRIC, _INFO_DOC, labels=("key",))
            for key, value in info_values:
                info_metric.add_metric((key,), {"value": value})
            yield info_metric

    def _flatten(self, prefix: str, value: Any) -> Iterator[tuple[str, str, Any]]:
        if isinstance(value, msgspec.Struct):
            yield from self._flatten(prefix, msgspec.structs.asdict(value))
            return
        if isinstance(value, dict):
            for raw_key, sub_value in cast(dict[Any, Any], value).items():
                key = raw_key if isinstance(raw_key, str) else str(raw_key)
                yield from self._flatten(f"{prefix}_{key}" if prefix else key, sub_value)
            return
        if isinstance(value, bool):
            yield ("gauge", prefix, 1.0 if value else 0.0)
            return
        if isinstance(value, (int, float)):
            yield ("gauge", prefix, float(value))
            return
        if value is None:
            yield ("info", prefix, "null")
            return
        yield ("info", prefix, str(value))


class MetricsRenderer:
    """Registry holding one :class:`SessionStateCollector`."""

    def __init__(self, state: RuntimeState) -> None:
        self.registry = CollectorRegistry()
        self.registry.register(SessionStateCollector(state))

    def render(self) -> bytes:
        return generate_latest(self.registry)


__all__ = ["METRICS_CONTENT_TYPE", "MetricsRenderer", "SessionStateCollector"]
