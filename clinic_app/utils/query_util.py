# /clinic_app/utils/query_util.py
import math
from flask import request
from clinic_app.utils.encryption_util import encryptor

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def get_pagination_args(default_limit=DEFAULT_PAGE_SIZE):
    page = _positive_int(request.args.get('page'), 1)
    limit = min(_positive_int(request.args.get('limit'), default_limit), MAX_PAGE_SIZE)
    return page, limit


def pagination_meta(page, limit, total):
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        'currentPage': page,
        'totalPages': total_pages,
        'totalItems': total,
        'itemsPerPage': limit,
        'hasNextPage': page < total_pages,
        'hasPrevPage': page > 1,
    }


def matches_term(record, term):
    """Case-insensitive substring match over a record's decrypted search fields."""
    needle = term.strip().lower()
    return any(needle in str(value).lower() for value in record.search_fields() if value is not None)


def search_encrypted(query, model, term):
    """
    Search over encrypted columns.

    An email-shaped term is first tried as an exact match through the blind
    index. Otherwise every candidate row is decrypted and filtered in memory,
    so cost grows with the size of ``query``; keep it scoped to one owner.
    """
    term = term.strip()
    if '@' in term and hasattr(model, 'email_index'):
        exact = query.filter(model.email_index == encryptor.blind_index(term)).all()
        if exact:
            return exact
    return [record for record in query.all() if matches_term(record, term)]
