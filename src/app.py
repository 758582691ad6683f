from flask import Blueprint, Flask, current_app, request, jsonify, send_file
import io
import logging
import os
from typing import Optional
from services.azure_devops_service import AzureDevOpsService, AzureDevOpsAuthenticationError
from services.export_service import ExportService, XLSX_MIMETYPE
from services.hierarchy_service import HierarchyTraverser
from services.logging_service import setup_logging
from services.models import WorkItemDataError
from services.remaining_work_service import calculate_remaining_by_team
from services.reporting_service import aggregate_reporting_by_team, parse_reporting_info
from services.settings import FieldNames, Settings, load_settings
from services.team_service import TeamResolver, load_teams
from flasgger import Swagger

logger = logging.getLogger(__name__)

EXTENSION_KEY = "azure_devops_helper"

# Configure Swagger with proper configuration
swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": 'apispec',
            "route": '/apispec.json',
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/docs"
}

swagger_template = {
    "info": {
        "title": "Azure DevOps Helper API",
        "description": "Remaining work and logged hours of Azure DevOps work items, rolled up by team",
        "version": "1.0",
        "contact": {
            "name": "API Support"
        }
    }
}

work_items_bp = Blueprint("work_items", __name__)


def _services() -> dict:
    return current_app.extensions[EXTENSION_KEY]


def _wants_xlsx() -> bool:
    return request.args.get("format", "json").lower() == "xlsx"


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() in ("true", "1", "yes")


def _not_found(work_item_id: int):
    logger.warning(f"Work item {work_item_id} not found")
    return jsonify({"error": f"Work Item '{work_item_id}' not found."}), 400


def _xlsx_response(content: bytes, file_name: str):
    response = send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=file_name
    )
    response.headers['file_name'] = file_name
    return response


def _error_response(error: Exception):
    """Map an exception raised while building a report to a structured failure"""
    if isinstance(error, AzureDevOpsAuthenticationError):
        logger.error("Authentication failed with Azure DevOps")
        return jsonify({
            "error": "Invalid Azure DevOps PAT token. Please check your credentials.",
            "status": "unauthorized"
        }), 401
    if isinstance(error, WorkItemDataError):
        logger.error(f"Work item data could not be interpreted: {error}")
        return jsonify({
            "error": str(error),
            "status": "error"
        }), 422

    logger.exception("Error building report")
    return jsonify({
        "error": "An error occurred while building the report. Please try again.",
        "status": "error"
    }), 500


@work_items_bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint
    ---
    responses:
      200:
        description: Service is healthy
    """
    return jsonify({"status": "healthy"}), 200


@work_items_bp.route('/api/work-items/<int:work_item_id>/reporting-info', methods=['GET'])
def reporting_info(work_item_id: int):
    """
    Logged hours of a work item's reporting table, rolled up by team
    ---
    parameters:
      - in: path
        name: work_item_id
        type: integer
        required: true
      - in: query
        name: format
        type: string
        enum: [json, xlsx]
        default: json
    responses:
      200:
        description: Hours per team, ordered by total hours descending
        schema:
          type: object
          properties:
            id:
              type: integer
            title:
              type: string
            reportingInfo:
              type: array
              items:
                type: object
                properties:
                  teamLabel:
                    type: string
                  totalHours:
                    type: number
      400:
        description: Work item not found
      401:
        description: Invalid Azure DevOps credentials
      422:
        description: Reporting table holds a malformed date or number
    """
    services = _services()
    try:
        logger.info(f"Received reporting-info request for work item {work_item_id}")
        work_item = services["client"].get_work_item(
            work_item_id, [FieldNames.TITLE, FieldNames.REPORTING_INFO]
        )
        if work_item is None:
            return _not_found(work_item_id)

        lines = parse_reporting_info(work_item.reporting_info)
        by_team = aggregate_reporting_by_team(services["resolver"], lines)

        if _wants_xlsx():
            content = services["export"].build_reporting_workbook(work_item_id, by_team)
            return _xlsx_response(content, f"reporting_info_{work_item_id}.xlsx")

        return jsonify({
            "id": work_item_id,
            "title": work_item.title,
            "reportingInfo": [line.to_dict() for line in by_team]
        }), 200
    except Exception as e:
        return _error_response(e)


@work_items_bp.route('/api/work-items/<int:work_item_id>/remaining-by-team', methods=['GET'])
def remaining_by_team(work_item_id: int):
    """
    Remaining work of the Tasks and Bugs under a work item, rolled up by team
    ---
    parameters:
      - in: path
        name: work_item_id
        type: integer
        required: true
      - in: query
        name: includeTasksInResponse
        type: boolean
        default: false
        description: Attach the contributing tasks to every team line
      - in: query
        name: format
        type: string
        enum: [json, xlsx]
        default: json
    responses:
      200:
        description: Remaining work per team, ordered by remaining work descending
        schema:
          type: object
          properties:
            id:
              type: integer
            title:
              type: string
            remainingByTeam:
              type: array
              items:
                type: object
                properties:
                  team:
                    type: string
                  remaining:
                    type: number
                  tasks:
                    type: array
                    items:
                      type: object
                      properties:
                        id:
                          type: integer
                        title:
                          type: string
                        remaining:
                          type: number
      400:
        description: Work item not found
      401:
        description: Invalid Azure DevOps credentials
      422:
        description: A relation does not reference a work item id
    """
    services = _services()
    try:
        include_tasks = _flag("includeTasksInResponse")
        logger.info(f"Received remaining-by-team request for work item {work_item_id} "
                    f"(includeTasksInResponse={include_tasks})")

        root = services["client"].get_work_item_with_relations(work_item_id)
        if root is None:
            return _not_found(work_item_id)

        leaves = services["traverser"].traverse_from(root)
        lines = calculate_remaining_by_team(services["resolver"], leaves, include_tasks)

        if _wants_xlsx():
            content = services["export"].build_remaining_workbook(work_item_id, lines)
            return _xlsx_response(content, f"remaining_by_team_{work_item_id}.xlsx")

        return jsonify({
            "id": work_item_id,
            "title": root.title,
            "remainingByTeam": [line.to_dict() for line in lines]
        }), 200
    except Exception as e:
        return _error_response(e)


def create_app(settings: Settings, client: Optional[AzureDevOpsService] = None) -> Flask:
    """
    Build the Flask application

    Args:
        settings: Process configuration, loaded once at start
        client: Azure DevOps client, built from settings when omitted
    """
    app = Flask(__name__)

    if client is None:
        client = AzureDevOpsService(
            settings.personal_access_token,
            settings.organization_url,
            timeout=settings.request_timeout,
            max_batch_size=settings.max_work_items_limit
        )

    app.extensions[EXTENSION_KEY] = {
        "settings": settings,
        "client": client,
        "resolver": TeamResolver(load_teams(settings.teams)),
        "traverser": HierarchyTraverser(
            client,
            max_batch_size=settings.max_work_items_limit,
            max_workers=settings.max_parallel_requests
        ),
        "export": ExportService(),
    }

    app.register_blueprint(work_items_bp)
    Swagger(app, config=swagger_config, template=swagger_template)
    return app


def main():
    settings = load_settings()
    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir)
    app = create_app(settings)
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting Azure DevOps Helper on port {port}")
    app.run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
