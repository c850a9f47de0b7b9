"""
Metrics and logging for Codora.

In-process counters and latency samples for gateway requests, plus the
logging setup used by the command-line and HTTP front ends.
"""

import logging
import statistics
import threading
from collections import defaultdict, deque
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Most recent provider latencies kept for percentiles.
MAX_LATENCY_SAMPLES = 1000


def configure_logging(level: int = logging.INFO, stream=None) -> logging.Logger:
    """
    Attach a stream handler to the "codora" logger once.

    Library modules only create loggers. Front ends call this.
    """
    logger = logging.getLogger("codora")
    handler = next((h for h in logger.handlers if getattr(h, "_codora", False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._codora = True
        logger.addHandler(handler)
    elif stream is not None:
        handler.setStream(stream)
    logger.setLevel(level)
    return logger


class GatewayMetrics:
    """
    Counts requests, cache hits, provider calls and errors.

    Read with get_stats(); nothing here affects routing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._latencies_ms: deque[float] = deque(maxlen=MAX_LATENCY_SAMPLES)

    def record_request(self) -> None:
        self._incr("requests_total")

    def record_cache_hit(self) -> None:
        self._incr("cache_hits")

    def record_inflight_join(self) -> None:
        self._incr("inflight_joins")

    def record_provider_call(self, tier: str, provider: str, latency_ms: float) -> None:
        with self._lock:
            self._counters["provider_calls"] += 1
            self._counters[f"provider_calls_{tier}"] += 1
            self._counters[f"provider_calls_{provider}"] += 1
            self._latencies_ms.append(latency_ms)

    def record_error(self, error_type: str) -> None:
        with self._lock:
            self._counters["errors_total"] += 1
            self._counters[f"errors_{error_type}"] += 1

    def _incr(self, name: str) -> None:
        with self._lock:
            self._counters[name] += 1

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_stats(self) -> dict:
        """
        Get aggregated statistics.

        Returns:
            Dictionary with counters and provider latency summary
        """
        with self._lock:
            counters = dict(self._counters)
            latencies = list(self._latencies_ms)

        p95: Optional[float]
        if len(latencies) >= 20:
            p95 = statistics.quantiles(latencies, n=20)[18]
        else:
            p95 = max(latencies) if latencies else 0

        return {
            "counters": counters,
            "latency": {
                "avg_ms": statistics.mean(latencies) if latencies else 0,
                "p50_ms": statistics.median(latencies) if latencies else 0,
                "p95_ms": p95,
            },
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._latencies_ms.clear()
