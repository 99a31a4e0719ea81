"""
Structure & dashboard blueprint.

Endpoints:
    GET /api/v1/structure              - nested month → evidence tree
    GET /api/v1/structure?format=flat  - raw left-joined rows
    GET /api/v1/dashboard              - global / phase / month progress
    GET /api/v1/phases                 - configured phases with progress

Every call re-reads the store; nothing is cached between requests.
"""

from flask import Blueprint, current_app, jsonify, request

from thesis_tracker.services import hierarchy
from thesis_tracker.services import progress as svc

structure_bp = Blueprint("structure", __name__, url_prefix="/api/v1")


def _phases():
    return svc.load_phases(current_app.config.get("THESIS_PHASES", []))


@structure_bp.route("/structure", methods=["GET"])
def get_structure():
    if request.args.get("format") == "flat":
        return jsonify(hierarchy.fetch_flat_rows()), 200
    tree = hierarchy.load_structure()
    return jsonify(hierarchy.structure_to_dicts(tree)), 200


@structure_bp.route("/dashboard", methods=["GET"])
def get_dashboard():
    """Progress rollup for the dashboard page."""
    tree = hierarchy.load_structure()
    return jsonify(svc.build_dashboard(tree, _phases())), 200


@structure_bp.route("/phases", methods=["GET"])
def list_phases():
    tree = hierarchy.load_structure()
    items = [
        {
            **phase.to_dict(),
            "progress": svc.phase_progress(tree, phase),
            "is_done": svc.is_phase_done(tree, phase),
        }
        for phase in _phases()
    ]
    return jsonify({"items": items, "total": len(items)}), 200
