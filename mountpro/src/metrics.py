"""
Lightweight async metrics helpers that write counters and latency samples to Redis.

Design:
- Counters: Redis INCRBY on key `metrics:counter:{name}`
- Latency samples: LPUSH to `metrics:lat:{name}`, LTRIM to keep last 1000 samples
- get_metrics() aggregates counters and computes simple stats for lat samples (count, avg, p50)
- If no Redis client is registered, operations are kept in-memory (process-local).
"""

from typing import Dict, Any, Optional
import logging
import statistics

from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

_MEM_COUNTERS: Dict[str, int] = {}
_MEM_LATS: Dict[str, list] = {}

_redis_client: Optional[aioredis.Redis] = None


def set_redis_client(client: Optional[aioredis.Redis]) -> None:
    """Register (or clear, with None) the Redis client used for metrics."""
    global _redis_client
    _redis_client = client


def reset() -> None:
    """Drop in-memory samples."""
    _MEM_COUNTERS.clear()
    _MEM_LATS.clear()


def _mem_increment(name: str, amount: int) -> None:
    _MEM_COUNTERS[name] = _MEM_COUNTERS.get(name, 0) + amount


def _mem_observe(name: str, ms: float, max_samples: int) -> None:
    _MEM_LATS.setdefault(name, []).insert(0, ms)
    if len(_MEM_LATS[name]) > max_samples:
        _MEM_LATS[name] = _MEM_LATS[name][:max_samples]


async def increment(name: str, amount: int = 1) -> None:
    """Increment a named counter by amount"""
    rc = _redis_client
    if rc:
        try:
            await rc.incrby(f"metrics:counter:{name}", amount)
            return
        except aioredis.RedisError as e:
            logger.debug(f"metrics redis incr failed, using memory: {e}")
    _mem_increment(name, amount)


async def observe_latency(name: str, ms: float, max_samples: int = 1000) -> None:
    """Record a latency sample (milliseconds) for a named metric"""
    rc = _redis_client
    if rc:
        key = f"metrics:lat:{name}"
        try:
            await rc.lpush(key, str(ms))
            await rc.ltrim(key, 0, max_samples - 1)
            return
        except aioredis.RedisError as e:
            logger.debug(f"metrics redis lpush failed, using memory: {e}")
    _mem_observe(name, ms, max_samples)


def _lat_stats(vals: list) -> Dict[str, float]:
    return {
        'count': len(vals),
        'avg_ms': sum(vals) / len(vals),
        'p50_ms': float(statistics.median(vals)),
    }


async def get_metrics() -> Dict[str, Any]:
    """Return a JSON-serializable dict of metrics: counters and simple latency stats.

    Redis-backed values are merged with any in-memory samples collected while
    Redis was unavailable.
    """
    out = {"counters": dict(_MEM_COUNTERS), "latencies": {}}
    raw_lat_vals = {n: list(v) for n, v in _MEM_LATS.items()}
    rc = _redis_client
    if rc:
        try:
            for k in await rc.keys('metrics:counter:*'):
                key = k.decode() if isinstance(k, (bytes, bytearray)) else k
                name = key.split(':', 2)[-1]
                v = await rc.get(key)
                out['counters'][name] = out['counters'].get(name, 0) + (int(v) if v is not None else 0)
            for k in await rc.keys('metrics:lat:*'):
                key = k.decode() if isinstance(k, (bytes, bytearray)) else k
                name = key.split(':', 2)[-1]
                vals = [float(v) for v in await rc.lrange(key, 0, -1)]
                raw_lat_vals[name] = raw_lat_vals.get(name, []) + vals
        except aioredis.RedisError as e:
            logger.warning(f"metrics redis read failed, reporting memory only: {e}")
    for name, vals in raw_lat_vals.items():
        if vals:
            out['latencies'][name] = _lat_stats(vals)
    return out
