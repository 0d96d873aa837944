# /clinic_app/utils/error_handlers.py
from flask import jsonify, current_app
from clinic_app.extensions import db


def register_error_handlers(app):
    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'message': 'Bad request'}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'message': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'message': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited(error):
        retry_after = getattr(error, 'retry_after', None)
        return jsonify({
            'success': False,
            'message': 'Too many requests. Please try again later.',
            'reason': 'RATE_LIMITED',
            'retryAfter': retry_after,
        }), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        current_app.audit_logger.error(f"Internal server error: {str(error)}")
        return jsonify({'success': False, 'message': 'Internal server error'}), 500
