import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request, session
from flask_caching import Cache
from flask_session import Session

import cache_provider
from backend_client import GET_FILTERS, GET_TENANT_HIERARCHY, GET_TRANSACTIONS, DashboardBackendClient, parse_request_json
from config import (
    CASH_POSITION_PATH,
    DASHBOARD_API_KEY,
    DASHBOARD_API_TIMEOUT_SECONDS,
    DASHBOARD_API_URL,
    DASHBOARD_SESSION_TTL_SECONDS,
    FILTERS_CACHE_TIMEOUT_SECONDS,
    FLASK_SECRET_KEY,
    LANGUAGE_CODE,
    TENANTS_CONFIG_PATH,
    logger,
)
from core.drilldown import PagerSnapshot
from core.multi_select import MultiSelect
from core.tenants import TenantDirectory
from core.text_normalization import font_class, mixed_font_class
from core.view_types import OptionViewModel, PickerWindowViewModel
from dashboard_state import TREE_LOAD_SUPERSEDED, DashboardSession, DashboardSessionRegistry
from exceptions import BackendError, BackendRequestError, DashboardError, RequestValidationError
from utils.cash_position import CASH_POSITION_COLUMNS, load_cash_position
from utils.reconciliation_view import build_row_views, header_rows
from utils.routing import DASHBOARD_SESSION_KEY, error_response, error_state_response, json_body, route_handler_logging, status_for_error
from utils.transaction_view import build_transaction_table

app = Flask(__name__)
app.secret_key = FLASK_SECRET_KEY or os.urandom(16)

os.makedirs(app.instance_path, exist_ok=True)
session_dir = os.path.join(app.instance_path, "flask_session")
os.makedirs(session_dir, exist_ok=True)
app.config.update(
    SESSION_TYPE="filesystem",
    SESSION_FILE_DIR=session_dir,
    SESSION_PERMANENT=False,
    SESSION_USE_SIGNER=True,
)
Session(app)

cache = Cache(app, config={"CACHE_TYPE": "SimpleCache", "CACHE_DEFAULT_TIMEOUT": FILTERS_CACHE_TIMEOUT_SECONDS})
cache_provider.set_cache(cache)

_executor = ThreadPoolExecutor(max_workers=4)

backend_client = DashboardBackendClient(DASHBOARD_API_URL, DASHBOARD_API_KEY, DASHBOARD_API_TIMEOUT_SECONDS)
tenant_directory = TenantDirectory.load(TENANTS_CONFIG_PATH)
cash_position_items = load_cash_position(CASH_POSITION_PATH)


def _new_dashboard_session() -> DashboardSession:
    return DashboardSession(backend_client, _executor, tenant_directory, language_code=LANGUAGE_CODE, cash_position_items=cash_position_items)


registry = DashboardSessionRegistry(_new_dashboard_session, ttl_seconds=DASHBOARD_SESSION_TTL_SECONDS)


def _dashboard() -> DashboardSession:
    """Return the dashboard state behind the current browser session, creating it on first use."""
    dashboard = registry.get_or_create(session.get(DASHBOARD_SESSION_KEY))
    session[DASHBOARD_SESSION_KEY] = dashboard.session_id
    return dashboard


@app.errorhandler(DashboardError)
def _handle_dashboard_error(exc: DashboardError):
    status = status_for_error(exc)
    logger.info("Request failed", path=request.path, status=status, error=str(exc))
    details = exc.body if isinstance(exc, BackendRequestError) else ""
    return error_response(str(exc), details, status)


def _error_status(state: Optional[Dict[str, Any]]) -> int:
    if not state:
        return 500
    if state.get("kind") in ("RequestValidationError", "TreeDocumentError"):
        return 400
    return state.get("status_code") or 502


# region Payload builders
def _rows_payload(dashboard: DashboardSession) -> Dict[str, Any]:
    materialized = dashboard.rows()
    return {
        "header": header_rows(),
        "rows": build_row_views(materialized.rows, dashboard.expansion),
        "visible_count": len(materialized.rows),
        "total_available": materialized.total_available,
        "has_more": materialized.has_more,
        "filter_state": dashboard.filter_state,
        "tree_error": dashboard.tree_error,
        "page_font_class": mixed_font_class(),
    }


def _picker_payload(tag: str, label: str, picker: MultiSelect) -> PickerWindowViewModel:
    window = picker.visible_window()
    selected = set(picker.selected)
    options: list[OptionViewModel] = [
        {"value": option.value, "label": option.label, "selected": option.value in selected, "font_class": font_class(option.label)} for option in window.options
    ]
    return {
        "tag": tag,
        "label": label,
        "search_term": picker.search_term,
        "selected": picker.selected,
        "display_text": picker.display_text(placeholder=f"Select {label}"),
        "all_selected": picker.is_all_selected,
        "partially_selected": picker.is_partially_selected,
        "can_clear": picker.can_clear,
        "scroll_offset": picker.scroll_offset,
        "start": window.start,
        "end": window.end,
        "total": window.total,
        "offset_top": window.offset_top,
        "offset_bottom": window.offset_bottom,
        "options": options,
    }


def _filter_label(dashboard: DashboardSession, tag: str) -> str:
    offered = next((f for f in dashboard.available_filters() if f.tag == tag), None)
    return (offered.label if offered else "") or tag


def _transactions_payload(dashboard: DashboardSession, snapshot: PagerSnapshot) -> Dict[str, Any]:
    payload = build_transaction_table(snapshot.transactions, snapshot.column_properties)
    payload.update(
        {
            "node_id": dashboard.selected_node_id,
            "has_more": snapshot.has_more,
            "loading": snapshot.in_flight,
            "next_page_index": snapshot.next_page_index,
            "pages_loaded": snapshot.pages_loaded,
            "error": asdict(snapshot.error) if snapshot.error else None,
            "query": snapshot.query.to_payload() if snapshot.query else None,
        }
    )
    return payload


# endregion


# region Tenant selection config
@app.route("/api/tenants", methods=["GET"])
@route_handler_logging
def list_tenants():
    return jsonify([{"value": t.tenant_id, "label": t.tenant_name, "code": t.tenant_code} for t in tenant_directory.tenants]), 200


@app.route("/api/tenants/<tenant_id>/areas", methods=["GET"])
@route_handler_logging
def list_areas(tenant_id: str):
    if tenant_directory.tenant(tenant_id) is None:
        return error_response("Unknown tenant", tenant_id, 404)
    return jsonify([{"value": a.area_id, "label": f"{a.area_code} - {a.area_name}", "name": a.area_name} for a in tenant_directory.areas(tenant_id)]), 200


@app.route("/api/areas/<area_id>/outlets", methods=["GET"])
@route_handler_logging
def list_outlets(area_id: str):
    return jsonify([{"value": o.outlet_id, "label": f"{o.outlet_code} - {o.outlet_name}", "name": o.outlet_name} for o in tenant_directory.outlets_of_area(area_id)]), 200


# endregion


# region Backend forwarders
@app.route("/api/get-filters", methods=["POST"])
@route_handler_logging
def get_filters():
    """Forward a GetFilters request to the dashboard backend."""
    body = json_body()
    payload = {"AreaId": body.get("areaId"), "OutletId": body.get("outletId"), "LanguageCode": body.get("languageCode") or "ar"}
    try:
        return jsonify(backend_client.call(GET_FILTERS, payload)), 200
    except BackendRequestError as exc:
        if exc.status_code is not None:
            return error_response(str(exc), exc.body, exc.status_code)
        return error_response("Failed to fetch filters", exc.body, 500)
    except BackendError as exc:
        return error_response("Failed to fetch filters", str(exc), 500)


@app.route("/api/get-tenant-hierarchy", methods=["POST"])
@route_handler_logging
def get_tenant_hierarchy():
    body = json_body()
    payload = {"AreaId": body.get("areaId"), "OutletId": body.get("outletId"), "LanguageCode": body.get("languageCode") or "ar"}
    try:
        return jsonify(backend_client.call(GET_TENANT_HIERARCHY, payload)), 200
    except BackendError as exc:
        logger.warning("Tenant hierarchy request failed", error=str(exc))
        return jsonify({"error": "Failed to fetch tenant hierarchy data"}), 500


@app.route("/api/get-transactions", methods=["POST"])
@route_handler_logging
def get_transactions():
    """Forward a GetTransactions request; ``RequestJson`` may be an object or JSON text."""
    request_json = json_body().get("RequestJson")
    if isinstance(request_json, str):
        request_json = parse_request_json(request_json)
    try:
        return jsonify(backend_client.call(GET_TRANSACTIONS, request_json)), 200
    except BackendRequestError as exc:
        if exc.status_code is not None:
            return error_response(str(exc), exc.body, exc.status_code)
        return error_response("Failed to fetch transactions", exc.body, 500)
    except BackendError as exc:
        return error_response("Failed to fetch transactions", str(exc), 500)


# endregion


# region Dashboard selection and tree
@app.route("/api/dashboard/selection", methods=["PUT"])
@route_handler_logging
def update_selection():
    body = json_body()
    dashboard = _dashboard()
    topics = body.get("topics")
    if topics is not None and not isinstance(topics, list):
        raise RequestValidationError("topics must be a list")
    changed = dashboard.set_selection(
        tenant_id=body.get("tenant_id"),
        area_id=body.get("area_id"),
        outlet_id=body.get("outlet_id"),
        business_day=body.get("business_day"),
        topics=topics,
    )
    return jsonify({**dashboard.selection(), "changed": changed}), 200


@app.route("/api/dashboard/business-day/shift", methods=["POST"])
@route_handler_logging
def shift_business_day():
    body = json_body()
    try:
        days = int(body.get("days", 1))
    except (TypeError, ValueError) as exc:
        raise RequestValidationError("days must be an integer") from exc
    dashboard = _dashboard()
    dashboard.shift_business_day(days)
    return jsonify(dashboard.selection()), 200


@app.route("/api/dashboard/load", methods=["POST"])
@route_handler_logging
def load_dashboard():
    """Fetch the tree for the current selection and return the first row window."""
    dashboard = _dashboard()
    if dashboard.filters_document is None:
        dashboard.load_filters()
    if not dashboard.load_tree():
        if dashboard.tree_error is None:
            return error_response(TREE_LOAD_SUPERSEDED, "", 409)
        return error_state_response(dashboard.tree_error, _error_status(dashboard.tree_error))
    return jsonify(_rows_payload(dashboard)), 200


@app.route("/api/dashboard/import", methods=["POST"])
@route_handler_logging
def import_dashboard():
    """Adopt a pasted tree document (``{"text": "..."}`` or the raw JSON text as body)."""
    body = request.get_json(silent=True)
    text = body.get("text") if isinstance(body, dict) else request.get_data(as_text=True)
    dashboard = _dashboard()
    if not dashboard.import_tree(text or ""):
        return error_state_response(dashboard.tree_error, _error_status(dashboard.tree_error))
    return jsonify(_rows_payload(dashboard)), 200


@app.route("/api/dashboard/rows", methods=["GET"])
@route_handler_logging
def dashboard_rows():
    return jsonify(_rows_payload(_dashboard())), 200


@app.route("/api/dashboard/rows/more", methods=["POST"])
@route_handler_logging
def dashboard_more_rows():
    dashboard = _dashboard()
    dashboard.load_more_rows()
    return jsonify(_rows_payload(dashboard)), 200


@app.route("/api/dashboard/nodes/<node_id>/toggle", methods=["POST"])
@route_handler_logging
def toggle_node(node_id: str):
    body = json_body()
    dashboard = _dashboard()
    toggled = dashboard.toggle_node(node_id, body.get("interaction_id"))
    return jsonify({"toggled": toggled, "expanded": dashboard.expansion.is_expanded(node_id), **_rows_payload(dashboard)}), 200


# endregion


# region Filters
@app.route("/api/dashboard/filters", methods=["GET"])
@route_handler_logging
def dashboard_filters():
    dashboard = _dashboard()
    if dashboard.filters_document is None and dashboard.filters_error is None:
        dashboard.load_filters()
    filters = [
        {"tag": f.tag, "label": f.label or f.tag, "selected": dashboard.filter_state.get(f.tag, []), "option_count": len(f.values)}
        for f in dashboard.available_filters()
    ]
    topics = [{"tag": t.tag, "label": t.label} for t in dashboard.filters_document.topics] if dashboard.filters_document else []
    return jsonify({"filters": filters, "topics": topics, "filter_state": dashboard.filter_state, "filters_error": dashboard.filters_error}), 200


def _picker_or_404(dashboard: DashboardSession, tag: str) -> Optional[MultiSelect]:
    try:
        return dashboard.picker(tag)
    except KeyError:
        return None


@app.route("/api/dashboard/filters/<tag>/options", methods=["GET"])
@route_handler_logging
def filter_options(tag: str):
    dashboard = _dashboard()
    picker = _picker_or_404(dashboard, tag)
    if picker is None:
        return error_response("Unknown filter", tag, 404)
    offset = request.args.get("offset")
    if offset is not None:
        try:
            picker.scroll_to(int(offset))
        except ValueError as exc:
            raise RequestValidationError("offset must be an integer") from exc
    return jsonify(_picker_payload(tag, _filter_label(dashboard, tag), picker)), 200


@app.route("/api/dashboard/filters/<tag>/search", methods=["POST"])
@route_handler_logging
def filter_search(tag: str):
    dashboard = _dashboard()
    picker = _picker_or_404(dashboard, tag)
    if picker is None:
        return error_response("Unknown filter", tag, 404)
    picker.set_search_term(str(json_body().get("term") or ""))
    return jsonify({**_picker_payload(tag, _filter_label(dashboard, tag), picker), "search_pending": picker.search_pending}), 200


@app.route("/api/dashboard/filters/<tag>/toggle", methods=["POST"])
@route_handler_logging
def filter_toggle(tag: str):
    body = json_body()
    value = body.get("value")
    if value is None:
        raise RequestValidationError("value is required")
    dashboard = _dashboard()
    picker = _picker_or_404(dashboard, tag)
    if picker is None:
        return error_response("Unknown filter", tag, 404)
    picker.toggle_option(str(value), bool(body.get("checked", True)))
    return jsonify(_picker_payload(tag, _filter_label(dashboard, tag), picker)), 200


@app.route("/api/dashboard/filters/<tag>/select-all", methods=["POST"])
@route_handler_logging
def filter_select_all(tag: str):
    dashboard = _dashboard()
    picker = _picker_or_404(dashboard, tag)
    if picker is None:
        return error_response("Unknown filter", tag, 404)
    picker.toggle_select_all()
    return jsonify(_picker_payload(tag, _filter_label(dashboard, tag), picker)), 200


@app.route("/api/dashboard/filters/<tag>/clear", methods=["POST"])
@route_handler_logging
def filter_clear(tag: str):
    dashboard = _dashboard()
    picker = _picker_or_404(dashboard, tag)
    if picker is None:
        return error_response("Unknown filter", tag, 404)
    picker.clear_all()
    return jsonify(_picker_payload(tag, _filter_label(dashboard, tag), picker)), 200


# endregion


# region Topic hierarchy
def _hierarchy_payload(dashboard: DashboardSession, topic: str) -> Dict[str, Any]:
    return {"topic": topic, "levels": dashboard.hierarchies.get(topic), "changed": dashboard.hierarchies.has_changed(topic), "parameter": dashboard.hierarchies.as_parameter(topic)}


@app.route("/api/dashboard/hierarchy/<topic>", methods=["GET", "PUT"])
@route_handler_logging
def topic_hierarchy(topic: str):
    dashboard = _dashboard()
    if request.method == "PUT":
        body = json_body()
        try:
            if "levels" in body:
                dashboard.hierarchies.set(topic, [str(level) for level in body["levels"]])
            else:
                dashboard.hierarchies.move(topic, int(body.get("source_index")), int(body.get("target_index")))
        except KeyError:
            return error_response("Unknown topic", topic, 404)
        except (TypeError, ValueError, IndexError) as exc:
            raise RequestValidationError(str(exc)) from exc
    return jsonify(_hierarchy_payload(dashboard, topic)), 200


@app.route("/api/dashboard/hierarchy/<topic>/reset", methods=["POST"])
@route_handler_logging
def reset_topic_hierarchy(topic: str):
    dashboard = _dashboard()
    try:
        dashboard.hierarchies.reset(topic)
    except KeyError:
        return error_response("Unknown topic", topic, 404)
    return jsonify(_hierarchy_payload(dashboard, topic)), 200


# endregion


# region Drill-down
@app.route("/api/dashboard/nodes/<node_id>/transactions", methods=["POST"])
@route_handler_logging
def open_drilldown(node_id: str):
    """Start loading the transactions behind a row; pages arrive in the background."""
    dashboard = _dashboard()
    try:
        dashboard.open_drilldown(node_id)
    except KeyError:
        return error_response("Unknown node", node_id, 404)
    return jsonify(_transactions_payload(dashboard, dashboard.transactions())), 202


@app.route("/api/transactions", methods=["GET"])
@route_handler_logging
def transactions():
    dashboard = _dashboard()
    return jsonify(_transactions_payload(dashboard, dashboard.transactions())), 200


@app.route("/api/transactions/more", methods=["POST"])
@route_handler_logging
def more_transactions():
    dashboard = _dashboard()
    requested = dashboard.load_more_transactions() is not None
    return jsonify({**_transactions_payload(dashboard, dashboard.transactions()), "requested": requested}), 202 if requested else 200


# endregion


# region Cash position
@app.route("/api/cash-position", methods=["GET"])
@route_handler_logging
def cash_position():
    report = _dashboard().cash_position
    return jsonify({"columns": [{"key": key, "label": label} for key, label in CASH_POSITION_COLUMNS], "rows": report.rows()}), 200


@app.route("/api/cash-position/<item_id>/toggle", methods=["POST"])
@route_handler_logging
def toggle_cash_position(item_id: str):
    report = _dashboard().cash_position
    toggled = report.toggle(item_id)
    return jsonify({"toggled": toggled, "rows": report.rows()}), 200


# endregion


@app.route('/.well-known/<path:path>')
def chrome_devtools_ping(path):
    # /.well-known/appspecific/com.chrome.devtools.json
    return '', 204


if __name__ == "__main__":
    app.run(port=8080, debug=True)
