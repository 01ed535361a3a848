DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_pagination(limit_raw, offset_raw):
    """Clamp ?limit/?offset query values; raises ValueError for non-integers."""
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else DEFAULT_PAGE_SIZE
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except (TypeError, ValueError):
        raise ValueError('limit and offset must be integers')
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)
