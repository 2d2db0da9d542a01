"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_generations_total: Dict[Tuple[str, str], int] = defaultdict(int)
_generation_cost_sum: Dict[str, float] = defaultdict(float)
_generation_duration_ms_sum: Dict[str, float] = defaultdict(float)
_provider_errors_total: Dict[Tuple[str, str], int] = defaultdict(int)
_health_probes_total: Dict[Tuple[str, str], int] = defaultdict(int)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_http_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _http_requests_total[(method_label, path_label, status)] += 1
        _http_request_duration_sum[(method_label, path_label)] += duration
        _http_request_duration_count[(method_label, path_label)] += 1


def record_generation(*, provider: str, outcome: str, cost: float = 0.0, duration_ms: float = 0.0) -> None:
    provider_label = _normalize_label(provider)
    with _lock:
        _generations_total[(provider_label, _normalize_label(outcome))] += 1
        if outcome == "succeeded":
            _generation_cost_sum[provider_label] += max(cost, 0.0)
            _generation_duration_ms_sum[provider_label] += max(duration_ms, 0.0)


def record_provider_error(*, provider: str, code: str) -> None:
    with _lock:
        _provider_errors_total[(_normalize_label(provider), _normalize_label(code))] += 1


def record_health_probe(*, provider: str, healthy: bool) -> None:
    result = "healthy" if healthy else "unhealthy"
    with _lock:
        _health_probes_total[(_normalize_label(provider), result)] += 1


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        generations_total = dict(_generations_total)
        cost_sum = dict(_generation_cost_sum)
        generation_ms_sum = dict(_generation_duration_ms_sum)
        provider_errors_total = dict(_provider_errors_total)
        health_probes_total = dict(_health_probes_total)

    lines = [
        "# HELP eventcanvas_build_info Build metadata.",
        "# TYPE eventcanvas_build_info gauge",
        (
            f'eventcanvas_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP eventcanvas_process_uptime_seconds Process uptime in seconds.",
        "# TYPE eventcanvas_process_uptime_seconds gauge",
        f"eventcanvas_process_uptime_seconds {uptime:.6f}",
        "# HELP eventcanvas_http_requests_total Total HTTP requests.",
        "# TYPE eventcanvas_http_requests_total counter",
    ]

    for (method, path, status), value in sorted(http_total.items()):
        lines.append(
            (
                f'eventcanvas_http_requests_total{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}",status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP eventcanvas_http_request_duration_seconds Request duration summary.",
            "# TYPE eventcanvas_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'eventcanvas_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'eventcanvas_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP eventcanvas_generations_total Image generations by provider and outcome.",
            "# TYPE eventcanvas_generations_total counter",
        ]
    )
    for (provider, outcome), value in sorted(generations_total.items()):
        lines.append(
            (
                f'eventcanvas_generations_total{{provider="{_escape_label(provider)}",'
                f'outcome="{_escape_label(outcome)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP eventcanvas_generation_cost_total Estimated spend of successful generations.",
            "# TYPE eventcanvas_generation_cost_total counter",
        ]
    )
    for provider, value in sorted(cost_sum.items()):
        lines.append(f'eventcanvas_generation_cost_total{{provider="{_escape_label(provider)}"}} {value:.6f}')

    lines.extend(
        [
            "# HELP eventcanvas_generation_duration_ms_total Provider time spent on successful generations.",
            "# TYPE eventcanvas_generation_duration_ms_total counter",
        ]
    )
    for provider, value in sorted(generation_ms_sum.items()):
        lines.append(
            f'eventcanvas_generation_duration_ms_total{{provider="{_escape_label(provider)}"}} {value:.3f}'
        )

    lines.extend(
        [
            "# HELP eventcanvas_provider_errors_total Classified provider errors.",
            "# TYPE eventcanvas_provider_errors_total counter",
        ]
    )
    for (provider, code), value in sorted(provider_errors_total.items()):
        lines.append(
            (
                f'eventcanvas_provider_errors_total{{provider="{_escape_label(provider)}",'
                f'code="{_escape_label(code)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP eventcanvas_health_probes_total Provider health probes by result.",
            "# TYPE eventcanvas_health_probes_total counter",
        ]
    )
    for (provider, result), value in sorted(health_probes_total.items()):
        lines.append(
            (
                f'eventcanvas_health_probes_total{{provider="{_escape_label(provider)}",'
                f'result="{_escape_label(result)}"}} {value}'
            )
        )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _generations_total.clear()
        _generation_cost_sum.clear()
        _generation_duration_ms_sum.clear()
        _provider_errors_total.clear()
        _health_probes_total.clear()
    _started_at = time.time()
