"""Rating Aggregator: averages and distributions derived from feedback facts."""

from datetime import datetime, timezone

from skillbridge import firestore_dao as dao
from skillbridge.firestore_models import RATING_MAX, RATING_MIN, parse_datetime

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def summarize(feedback):
    """Summarise an iterable of feedback documents.

    Facts with a rating outside 1-5 are ignored. The average is rounded to
    two decimals and is ``None`` when there are no ratings.
    """
    distribution = {star: 0 for star in range(RATING_MIN, RATING_MAX + 1)}
    total = 0
    for fb in feedback:
        rating = fb.get('rating')
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            continue
        rating = int(rating)
        if rating not in distribution:
            continue
        distribution[rating] += 1
        total += rating

    count = sum(distribution.values())
    return {
        'averageRating': round(total / count, 2) if count else None,
        'ratingCount': count,
        'distribution': distribution,
    }


def rating_summary(session_id):
    return summarize(dao.get_feedback_by_session(session_id))


def _review_time(fb):
    return parse_datetime(fb.get('updatedAt')) or parse_datetime(fb.get('createdAt')) or _EPOCH


def list_reviews(session_id, limit=None):
    """Reviews for a session, most recently written first."""
    reviews = sorted(dao.get_feedback_by_session(session_id), key=_review_time, reverse=True)
    if limit:
        reviews = reviews[:limit]
    return [
        {
            'id': fb['id'],
            'attendeeId': fb.get('attendeeId'),
            'attendeeName': fb.get('attendeeName') or 'Anonymous',
            'rating': fb.get('rating'),
            'comment': fb.get('comment') or '',
            'createdAt': fb.get('createdAt'),
            'updatedAt': fb.get('updatedAt'),
        }
        for fb in reviews
    ]
