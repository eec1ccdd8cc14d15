"""
MountPro HTTP facade.

Exposes one map session over JSON so a browser shell can push viewport,
filter, selection and connectivity events and read back the filtered POIs
and the reconciled marker list.
"""

from typing import Optional

import aiohttp
from quart import Quart, jsonify, request
from quart_cors import cors
from redis import asyncio as aioredis

from mountpro.config import get_config, setup_logging
from mountpro.providers.base import ProviderStatus
from mountpro.providers.groq_provider import GroqLiveInfoProvider
from mountpro.providers.overpass_provider import OverpassPoiProvider
from mountpro.src import metrics
from mountpro.src.connectivity import ConnectivityMonitor
from mountpro.src.enrichment import LiveInfoService, navigation_url, reviews_url, signal_level
from mountpro.src.markers import RecordingSurface
from mountpro.src.models import Bounds, FilterCriteria
from mountpro.src.persistence import create_storage
from mountpro.src.session import MapSession
from mountpro.src.store import PoiStore

app = Quart(__name__)
app = cors(app, allow_origin="*", allow_methods=["GET", "POST", "OPTIONS"])

# Global async clients
aiohttp_session: Optional[aiohttp.ClientSession] = None
redis_client: Optional[aioredis.Redis] = None
map_session: Optional[MapSession] = None
surface: Optional[RecordingSurface] = None


def build_session(http_session: Optional[aiohttp.ClientSession]):
    """Wire a map session with the configured providers and storage."""
    config = get_config()
    recording = RecordingSurface()
    connectivity = ConnectivityMonitor(initial=True)
    store = PoiStore(create_storage(config), key=config.storage_config.key)
    live_info = LiveInfoService(GroqLiveInfoProvider(session=http_session), connectivity)
    session = MapSession(
        store,
        OverpassPoiProvider(session=http_session),
        recording,
        connectivity=connectivity,
        live_info=live_info,
    )
    return session, recording


@app.before_serving
async def startup():
    global aiohttp_session, redis_client, map_session, surface
    config = get_config()
    aiohttp_session = aiohttp.ClientSession(headers={"User-Agent": config.fetch_config.user_agent})
    if config.storage_config.backend == "redis":
        try:
            redis_client = aioredis.from_url(config.storage_config.redis_url)
            await redis_client.ping()
            metrics.set_redis_client(redis_client)
            app.logger.info("Redis connected for metrics")
        except (aioredis.RedisError, OSError):
            redis_client = None
            app.logger.warning("Redis not available; metrics kept in memory")
    map_session, surface = build_session(aiohttp_session)
    await map_session.start()


@app.after_serving
async def shutdown():
    global aiohttp_session, redis_client, map_session
    if map_session:
        await map_session.close()
        map_session = None
    if aiohttp_session:
        await aiohttp_session.close()
        aiohttp_session = None
    if redis_client:
        metrics.set_redis_client(None)
        await redis_client.close()
        redis_client = None


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


async def _json_object():
    """Return the request body as a dict, {} when absent, None when it is not a JSON object."""
    payload = await request.get_json(silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


@app.route("/health")
async def health():
    return jsonify({
        "status": "ok",
        "ready": map_session is not None,
        "redis": redis_client is not None,
    })


@app.route("/health/providers")
async def health_providers():
    """Ping every upstream provider; 503 when any of them is unhealthy."""
    report = await map_session.provider_health()
    healthy = all(entry["status"] == ProviderStatus.HEALTHY.value for entry in report.values())
    return jsonify({"healthy": healthy, "providers": report}), 200 if healthy else 503


@app.route("/api/status")
async def api_status():
    return jsonify(map_session.status())


@app.route("/api/pois")
async def api_pois():
    pois = map_session.filtered()
    return jsonify({
        "pois": [p.to_dict() for p in pois],
        "count": len(pois),
        "searching": map_session.area_fetch.is_searching,
    })


@app.route("/api/pois/<poi_id>/live")
async def api_poi_live(poi_id):
    poi = map_session.store.get(poi_id)
    if poi is None:
        return _error("unknown poi", 404)
    live = await map_session.live_info(poi_id)
    return jsonify({
        "id": poi_id,
        "live": live.to_dict() if live else None,
        "signalLevel": signal_level(poi, live),
        "reviewsUrl": reviews_url(poi, live),
    })


@app.route("/api/pois/<poi_id>")
async def api_poi(poi_id):
    poi = map_session.store.get(poi_id)
    if poi is None:
        return _error("unknown poi", 404)
    return jsonify({
        **poi.to_dict(),
        "signalLevel": signal_level(poi),
        "navigationUrl": navigation_url(poi),
        "reviewsUrl": reviews_url(poi),
    })


@app.route("/api/viewport", methods=["POST"])
async def api_viewport():
    payload = await _json_object()
    if payload is None:
        return _error("JSON object body required")
    try:
        bounds = Bounds.from_dict(payload)
    except ValueError as e:
        return _error(str(e))
    map_session.set_viewport(bounds)
    return jsonify({"accepted": True, "online": map_session.connectivity.online}), 202


@app.route("/api/filters", methods=["POST"])
async def api_filters():
    payload = await _json_object()
    if payload is None:
        return _error("JSON object body required")
    try:
        criteria = FilterCriteria.from_dict(payload)
    except (TypeError, ValueError) as e:
        return _error(f"invalid filters: {e}")
    stats = map_session.set_criteria(criteria)
    return jsonify({
        "criteria": criteria.to_dict(),
        "count": len(map_session.filtered()),
        "markers": {"added": stats.added, "updated": stats.updated, "removed": stats.removed},
    })


@app.route("/api/select", methods=["POST"])
async def api_select():
    payload = await _json_object()
    if payload is None:
        return _error("JSON object body required")
    poi_id = payload.get("id")
    if poi_id is not None and not isinstance(poi_id, str):
        return _error("'id' must be a string or null")
    if not map_session.select(poi_id):
        return _error("unknown poi", 404)
    return jsonify({"selectedId": map_session.selected_id})


@app.route("/api/search", methods=["POST"])
async def api_search():
    payload = await _json_object()
    if payload is None:
        return _error("JSON object body required")
    query = payload.get("query")
    if not isinstance(query, str) or not query.strip():
        return _error("query required")
    match = await map_session.search(query.strip())
    return jsonify({
        "match": match.to_dict() if match else None,
        "selectedId": map_session.selected_id,
        "offline": map_session.connectivity.offline,
    })


@app.route("/api/connectivity", methods=["POST"])
async def api_connectivity():
    payload = await _json_object()
    if payload is None:
        return _error("JSON object body required")
    if not isinstance(payload.get("online"), bool):
        return _error("'online' must be a boolean")
    changed = map_session.set_online(payload["online"])
    return jsonify({"online": map_session.connectivity.online, "changed": changed})


@app.route("/api/markers")
async def api_markers():
    return jsonify({"markers": surface.snapshot()})


@app.route("/api/markers/<poi_id>/click", methods=["POST"])
async def api_marker_click(poi_id):
    if not map_session.reconciler.notify_click(poi_id):
        return _error("no marker for poi", 404)
    return jsonify({"queued": True}), 202


@app.route("/metrics/json")
async def metrics_json():
    return jsonify(await metrics.get_metrics())


if __name__ == "__main__":
    setup_logging()
    app.run(host="0.0.0.0", port=5010, debug=get_config().debug)
