from typing import Optional

from clinic.models import Notification
from clinic.services.pagination import paginate


def notify(user, title: str, message: str, type: str = 'GENERAL', link: str = '') -> Optional[Notification]:
    if user is None:
        return None
    return Notification.objects.create(user=user, title=title, message=message, type=type, link=link)


def _serialize(n: Notification) -> dict:
    return {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'isRead': n.is_read,
        'link': n.link or None,
        'createdAt': n.created_at.isoformat(),
    }


def list_notifications(user, *, unread_only: bool = False, page=1, limit=None):
    qs = Notification.objects.filter(user=user).order_by('-created_at', '-id')
    if unread_only:
        qs = qs.filter(is_read=False)
    items, pagination = paginate(qs, page, limit)
    pagination['unread'] = Notification.objects.filter(user=user, is_read=False).count()
    return [_serialize(n) for n in items], pagination


def mark_read(user, ids: Optional[list[int]] = None) -> int:
    """Mark the given notifications (all when ``ids`` is empty) as read."""
    qs = Notification.objects.filter(user=user, is_read=False)
    if ids:
        qs = qs.filter(id__in=ids)
    return qs.update(is_read=True)
