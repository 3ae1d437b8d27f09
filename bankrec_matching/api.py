"""
HTTP surface for the reconciliation matching session.

Exposes the live match settings and the search orchestrator's results as a
small JSON API built with Flask.
"""

import logging
from concurrent.futures import Future

from flask import Flask, jsonify, request

from bankrec_matching.config.validation import (
    parse_filter_id, parse_round_off_tolerance, parse_sort_field, parse_sort_order
)
from bankrec_matching.models import ConfigurationError, Transaction, ValidationError
from bankrec_matching.orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)


def create_app(orchestrator: SearchOrchestrator) -> Flask:
    """Create the Flask app serving one orchestrator."""
    app = Flask(__name__)
    app.config['ORCHESTRATOR'] = orchestrator
    settings = orchestrator.settings

    def settings_response(accepted: bool):
        return jsonify({
            'accepted': accepted,
            'settings': settings.current.to_dict(),
            'withdrawal_active': settings.withdrawal_active
        })

    def result_response(outcome):
        # With an executor the search is still running; report where it stands
        status_code = 202 if isinstance(outcome, Future) and not outcome.done() else 200
        return jsonify(orchestrator.result.to_dict()), status_code

    @app.route('/health', methods=['GET'])
    def health_check():
        connector = orchestrator.connector
        return jsonify({
            'status': 'healthy' if connector.is_healthy() else 'degraded',
            'connection': connector.get_connection_info()
        })

    @app.route('/settings', methods=['GET'])
    def get_settings():
        return settings_response(True)

    @app.route('/settings/filters/<filter_id>', methods=['PUT'])
    def put_filter(filter_id):
        data = request.get_json(silent=True) or {}
        enabled = data.get('enabled')
        try:
            parse_filter_id(filter_id)
        except ConfigurationError as e:
            logger.warning(f"Rejected filter update: {e}")
            return settings_response(False)

        if enabled is not None and not isinstance(enabled, bool):
            logger.warning(f"Rejected filter update: enabled must be a boolean, got {enabled!r}")
            return settings_response(False)

        was_enabled = settings.current.is_enabled(filter_id)
        settings.toggle_filter(filter_id, enabled)
        wanted = (not was_enabled) if enabled is None else enabled
        return settings_response(settings.current.is_enabled(filter_id) == wanted)

    @app.route('/settings/sort', methods=['PUT'])
    def put_sort():
        data = request.get_json(silent=True) or {}
        field, order = data.get('field'), data.get('order')
        try:
            wanted_field = parse_sort_field(field) if field is not None else None
            wanted_order = parse_sort_order(order) if order is not None else None
        except ConfigurationError as e:
            logger.warning(f"Rejected sort update: {e}")
            return settings_response(False)

        settings.set_sort(wanted_field, wanted_order)
        return settings_response(True)

    @app.route('/settings/round-off', methods=['PUT'])
    def put_round_off():
        data = request.get_json(silent=True) or {}
        try:
            tolerance = parse_round_off_tolerance(data.get('value'))
        except ConfigurationError as e:
            logger.warning(f"Rejected round-off tolerance: {e}")
            return settings_response(False)

        settings.set_round_off_tolerance(tolerance)
        return settings_response(True)

    @app.route('/match', methods=['POST'])
    def post_match():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400
        try:
            transaction = Transaction.from_dict(data)
        except ValidationError as e:
            logger.info(f"Rejected transaction payload: {e}")
            return jsonify({"error": str(e)}), 400

        logger.info(f"Matching transaction {transaction.name} ({transaction.match_amount})")
        return result_response(orchestrator.set_transaction(transaction))

    @app.route('/match', methods=['GET'])
    def get_match():
        return jsonify(orchestrator.result.to_dict())

    @app.route('/match/retry', methods=['POST'])
    def retry_match():
        return result_response(orchestrator.retry())

    @app.route('/match/search-amount', methods=['POST'])
    def search_amount():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or 'amount' not in data:
            return jsonify({"error": "Request body must be a JSON object with an amount"}), 400
        try:
            outcome = orchestrator.set_search_amount(data['amount'])
        except ValidationError as e:
            logger.info(f"Rejected search amount: {e}")
            return jsonify({"error": str(e)}), 400
        return result_response(outcome)

    @app.route('/match/show-all', methods=['POST'])
    def show_all_invoices():
        return result_response(orchestrator.show_all())

    return app
