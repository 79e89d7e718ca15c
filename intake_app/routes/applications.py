# intake_app/routes/applications.py

"""
JSON endpoints for application intake, validation and duplicate resolution.

Handlers stay thin: they parse the request, call the intake service, and let
the registered error handlers turn lifecycle errors into JSON responses.
"""

from flask import current_app, jsonify, request
from werkzeug.exceptions import BadRequest, NotFound

from config.dedupe import load_profile
from intake_app.lifecycle.errors import ValidationPreconditionError
from intake_app.lifecycle.intake import IntakeService

RESOLUTION_ACTIONS = ("ignore", "link", "merge", "note-and-archive")


def get_intake_service():
    """Build an intake service bound to the current request's session."""
    return IntakeService.from_config(current_app.config, profile=current_app.extensions["dedupe_profile"])


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def _actor(data=None):
    actor = request.headers.get("X-Operator-Id") or (data or {}).get("actor")
    actor = (actor or "").strip()
    if not actor:
        raise ValidationPreconditionError("An operator id is required (X-Operator-Id header or 'actor')", field="actor")
    return actor


def _expected_revision(data):
    raw = data.get("revision", request.headers.get("If-Match"))
    if raw in (None, ""):
        return None
    try:
        return int(str(raw).strip('"'))
    except ValueError as exc:
        raise BadRequest(f"Revision must be an integer, got {raw!r}") from exc


def _flag(data, key):
    value = data.get(key, False)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def register_application_routes(app):
    """Register application and resolution API routes"""

    app.extensions["dedupe_profile"] = load_profile(app.config)

    @app.route("/api/applications", methods=["GET"])
    def api_list_applications():
        """Active (non-archived) applications, optionally for one project."""
        project_id = request.args.get("project_id")
        records = get_intake_service().active_records(project_id)
        return jsonify({"applications": [record.to_dict(include_audit=False) for record in records]})

    @app.route("/api/applications/queue", methods=["GET"])
    def api_validation_queue():
        project_id = request.args.get("project_id")
        records = get_intake_service().validation_queue(project_id)
        current_app.logger.debug(f"Validation queue for {project_id or 'all projects'}: {len(records)} record(s)")
        return jsonify({"applications": [record.to_dict(include_audit=False) for record in records]})

    @app.route("/api/applications/<app_id>", methods=["GET"])
    def api_get_application(app_id):
        record = get_intake_service().store.get_application_by_id(app_id)
        if record is None:
            raise NotFound(f"Application {app_id} not found")
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/exists", methods=["GET"])
    def api_application_exists(app_id):
        return jsonify({"exists": get_intake_service().store.check_id_exists(app_id)})

    @app.route("/api/applications", methods=["POST"])
    def api_create_application():
        data = _json_body()
        actor = _actor(data)
        result = get_intake_service().submit(
            data,
            actor,
            acknowledge_duplicates=_flag(data, "acknowledge_duplicates"),
        )
        current_app.logger.info(f"Application {result.record.id} created by {actor}")
        return jsonify(result.to_dict()), 201

    @app.route("/api/applications/<app_id>", methods=["PUT"])
    def api_update_application(app_id):
        data = _json_body()
        actor = _actor(data)
        data["id"] = app_id
        result = get_intake_service().submit(
            data,
            actor,
            is_edit=True,
            acknowledge_duplicates=_flag(data, "acknowledge_duplicates"),
            expected_revision=_expected_revision(data),
        )
        return jsonify(result.to_dict())

    @app.route("/api/applications/duplicates", methods=["POST"])
    def api_find_duplicates():
        """Screen a candidate without saving anything."""
        data = _json_body()
        screening = get_intake_service().workflow.screen(data)
        return jsonify(screening.to_dict())

    @app.route("/api/applications/<app_id>/validate", methods=["POST"])
    def api_validate_application(app_id):
        data = _json_body()
        record = get_intake_service().state_machine.validate_decision(
            app_id,
            data.get("decision") or "",
            data.get("rejection_reason"),
            data.get("remarks"),
            _actor(data),
            expected_revision=_expected_revision(data),
        )
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/reset", methods=["POST"])
    def api_reset_application(app_id):
        data = request.get_json(silent=True) or {}
        record = get_intake_service().state_machine.reset_status(app_id, _actor(data))
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/promote", methods=["POST"])
    def api_promote_application(app_id):
        data = request.get_json(silent=True) or {}
        record = get_intake_service().state_machine.promote_to_production(app_id, _actor(data))
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/lottery-ready", methods=["POST"])
    def api_mark_lottery_ready(app_id):
        data = request.get_json(silent=True) or {}
        record = get_intake_service().state_machine.mark_lottery_ready(app_id, _actor(data))
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/award", methods=["POST"])
    def api_award_application(app_id):
        data = request.get_json(silent=True) or {}
        record = get_intake_service().state_machine.award(app_id, _actor(data))
        return jsonify(record.to_dict())

    @app.route("/api/applications/<app_id>/documents", methods=["POST"])
    def api_record_document(app_id):
        """Record metadata for an uploaded document; the file itself is stored elsewhere."""
        data = _json_body()
        document = get_intake_service().record_document_version(
            app_id,
            data.get("doc_type") or "",
            data.get("file_name") or "",
            data.get("url"),
            _actor(data),
        )
        return jsonify(document.to_dict()), 201

    @app.route("/api/resolutions/<action>", methods=["POST"])
    def api_resolve_duplicate(action):
        if action not in RESOLUTION_ACTIONS:
            raise NotFound(f"Unknown resolution '{action}'")
        data = _json_body()
        actor = _actor(data)
        survivor_id = (data.get("survivor_id") or "").strip()
        loser_id = (data.get("loser_id") or "").strip()
        workflow = get_intake_service().workflow

        if action == "ignore":
            result = workflow.resolve_ignore(survivor_id, loser_id, actor)
        elif action == "link":
            result = workflow.resolve_link(survivor_id, loser_id, actor)
        elif action == "merge":
            result = workflow.resolve_merge(survivor_id, loser_id, actor)
        else:
            loser = {"id": loser_id, "rejection_reason": data.get("rejection_reason")}
            result = workflow.resolve_note_and_archive(survivor_id, loser, actor)

        current_app.logger.info(f"Resolution '{action}' applied to {loser_id} (survivor {survivor_id}) by {actor}")
        return jsonify(result.to_dict())

    @app.route("/api/stats", methods=["GET"])
    def api_dashboard_stats():
        return jsonify(get_intake_service().dashboard_stats(request.args.get("project_id")))

    @app.route("/api/settings", methods=["GET"])
    def api_settings():
        """Reference data the intake and validation screens need."""
        return jsonify(
            {
                "duplicate_threshold": current_app.config["DUPLICATE_THRESHOLD"],
                "rejection_reasons": list(current_app.config["REJECTION_REASONS"]),
                "document_checklist": list(current_app.config["DOCUMENT_CHECKLIST"]),
                "default_project_id": current_app.config.get("DEFAULT_PROJECT_ID"),
            }
        )
