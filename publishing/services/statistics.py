import logging
import re
from datetime import date, timedelta

from django.conf import settings
from django.utils import timezone
from googleapiclient.discovery import build
from googleapiclient.errors import Error as GoogleApiError

from mediaforge.errors import InvalidInputError, InvalidStateError, NotFoundError, PlatformError
from ..models import Platform, PublishingRecord
from .publisher import PublishingHistoryService
from .token_store import ANALYTICS, STATS
from .youtube_auth import YouTubeAuthManager

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_METRICS = 'views,comments,likes,subscribersGained,subscribersLost'
DIMENSIONS = ('day', 'month')
RELATIVE_DATE = re.compile(r'^(\d+)days?Ago$', re.IGNORECASE)


class VideoStatisticsService:
    def __init__(self, auth=None, history=None, namespace=STATS):
        self.auth = auth or YouTubeAuthManager()
        self.history = history or PublishingHistoryService()
        self.namespace = namespace

    def get_statistics(self, record_id, user):
        record = self.history.find_one(record_id, user)
        if record.platform != Platform.YOUTUBE or record.status != PublishingRecord.Status.SUCCESS:
            raise InvalidStateError('Statistics are only available for videos published to YouTube.', entity_id=record_id)

        key = self.namespace.key(record.platform_video_id)
        cached = self.namespace.cache.get(key)
        if cached is not None:
            return cached

        client = self.auth.get_client_for_user(user.pk)
        try:
            response = client.youtube.videos().list(part='statistics,snippet', id=record.platform_video_id).execute()
        except GoogleApiError as e:
            logger.warning("Fetching statistics for %s failed: %s", record.platform_video_id, e)
            raise PlatformError('Failed to fetch video statistics from YouTube.', entity_id=record_id)
        items = response.get('items') or []
        if not items:
            raise NotFoundError(f"YouTube video {record.platform_video_id} not found.", entity_id=record_id)

        item = items[0]
        counts = item.get('statistics', {})
        snippet = item.get('snippet', {})
        stats = {
            'record_id': str(record.pk),
            'platform_video_id': record.platform_video_id,
            'url': record.platform_url,
            'title': snippet.get('title', record.title),
            'published_at': snippet.get('publishedAt'),
            'view_count': int(counts.get('viewCount', 0)),
            'like_count': int(counts.get('likeCount', 0)),
            'comment_count': int(counts.get('commentCount', 0)),
            'favorite_count': int(counts.get('favoriteCount', 0)),
            'fetched_at': timezone.now().isoformat(),
        }
        self.namespace.cache.set(key, stats, timeout=settings.YOUTUBE_STATS_TTL)
        return stats


def resolve_date(value, today=None):
    """Accept ``YYYY-MM-DD``, ``today`` or ``<n>daysAgo``."""
    today = today or date.today()
    if value == 'today':
        return today.isoformat()
    match = RELATIVE_DATE.match(value or '')
    if match:
        return (today - timedelta(days=int(match.group(1)))).isoformat()
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise InvalidInputError(f"Unrecognized date '{value}'.")


class ChannelAnalyticsService:
    def __init__(self, auth=None, namespace=ANALYTICS):
        self.auth = auth or YouTubeAuthManager()
        self.namespace = namespace

    def get_channel_analytics(self, user, start_date='30daysAgo', end_date='today',
                              metrics=DEFAULT_CHANNEL_METRICS, dimensions='day'):
        if dimensions not in DIMENSIONS:
            raise InvalidInputError(f"Unsupported dimension '{dimensions}'.")
        metrics = ','.join(m.strip() for m in (metrics or DEFAULT_CHANNEL_METRICS).split(',') if m.strip())
        start, end = resolve_date(start_date), resolve_date(end_date)
        if start > end:
            raise InvalidInputError('start_date must not be after end_date.')

        key = self.namespace.key('channel', user.pk, metrics, start, end, dimensions)
        cached = self.namespace.cache.get(key)
        if cached is not None:
            return cached

        client = self.auth.get_client_for_user(user.pk)
        try:
            analytics = build('youtubeAnalytics', 'v2', credentials=client.credentials, cache_discovery=False)
            response = analytics.reports().query(
                ids='channel==MINE',
                startDate=start,
                endDate=end,
                metrics=metrics,
                dimensions=dimensions,
                sort=dimensions,
            ).execute()
        except GoogleApiError as e:
            logger.warning("Fetching channel analytics for user %s failed: %s", user.pk, e)
            raise PlatformError('Failed to fetch channel analytics from YouTube.')

        headers = [h.get('name') for h in response.get('columnHeaders', [])]
        result = {
            'channel_id': client.channel_id,
            'start_date': start,
            'end_date': end,
            'dimension': dimensions,
            'metrics': metrics.split(','),
            'rows': [dict(zip(headers, row)) for row in response.get('rows') or []],
        }
        self.namespace.cache.set(key, result, timeout=settings.YOUTUBE_ANALYTICS_TTL)
        return result
