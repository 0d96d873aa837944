from datetime import datetime, timedelta
from flask import request, jsonify
from sqlalchemy import func, or_
from clinic_app.extensions import db
from clinic_app.models.system_models import AuditLog
from clinic_app.utils.query_util import get_pagination_args, pagination_meta

SORTABLE_COLUMNS = {
    'createdAt': AuditLog.created_at,
    'action': AuditLog.action,
    'recordType': AuditLog.record_type,
    'outcome': AuditLog.outcome,
    'userName': AuditLog.user_name,
}


def _parse_date(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


def _log_view(log):
    """Readable view of a log row: the encrypted actor id is replaced by the actor name."""
    data = log.to_dict()
    data['userRole'] = log.user_role
    data['userName'] = log.user_name
    data['user'] = log.user_name
    return data


def get_audit_logs():
    page, limit = get_pagination_args()
    args = request.args
    query = AuditLog.query

    search = (args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            AuditLog.action.ilike(pattern),
            AuditLog.record_type.ilike(pattern),
            AuditLog.ip_address.ilike(pattern),
            AuditLog.user_agent.ilike(pattern),
        ))
    if args.get('action'):
        query = query.filter(AuditLog.action.ilike(f"%{args['action']}%"))
    if args.get('recordType'):
        query = query.filter(AuditLog.record_type.ilike(f"%{args['recordType']}%"))

    start_date = _parse_date(args.get('startDate'))
    end_date = _parse_date(args.get('endDate'))
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    column = SORTABLE_COLUMNS.get(args.get('sortBy'), AuditLog.created_at)
    ascending = args.get('sortOrder') == 'asc'
    query = query.order_by(column.asc() if ascending else column.desc(),
                           AuditLog.id.asc() if ascending else AuditLog.id.desc())

    total = query.count()
    logs = query.offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        'success': True,
        'data': [_log_view(log) for log in logs],
        'pagination': pagination_meta(page, limit, total),
    }), 200


def get_audit_log(log_id):
    log = db.session.get(AuditLog, log_id)
    if not log:
        return jsonify({'success': False, 'message': 'Audit log not found'}), 404
    return jsonify({'success': True, 'data': _log_view(log)}), 200


def _top_counts(column, limit=10):
    rows = (db.session.query(column, func.count(AuditLog.id).label('count'))
            .group_by(column)
            .order_by(func.count(AuditLog.id).desc())
            .limit(limit).all())
    return [{'_id': value, 'count': count} for value, count in rows]


def get_audit_log_stats():
    since = datetime.utcnow() - timedelta(hours=24)
    recent = (AuditLog.query.filter(AuditLog.created_at >= since)
              .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
              .limit(5).all())
    return jsonify({
        'success': True,
        'data': {
            'totalLogs': AuditLog.query.count(),
            'actionStats': _top_counts(AuditLog.action),
            'recordTypeStats': _top_counts(AuditLog.record_type),
            'recentLogs': [_log_view(log) for log in recent],
        },
    }), 200
